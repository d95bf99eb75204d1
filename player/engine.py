"""
Media backend using python-mpv.
Handles the low-level details of audio playback: loading, readiness,
end-of-item detection and throttled position updates.
"""

import itertools
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import mpv

from .backend import BackendListener, MediaBackend

logger = logging.getLogger(__name__)


class MpvBackend(MediaBackend):
    """Wrapper around MPV for audio-only playback."""

    def __init__(self, player: Optional[Any] = None):
        # vo='null' because we are audio-only; we provide direct URLs
        self.player = player or mpv.MPV(vo='null', ytdl=False, idle=True)

        self._listener: Optional[BackendListener] = None
        self._lock = threading.Lock()
        self._pending = False
        self._loaded = False

        # token -> [interval, callback, last_fired]
        self._observers: Dict[int, list] = {}
        self._tokens = itertools.count(1)

        self.player.observe_property('time-pos', self._handle_time_update)
        self.player.observe_property('duration', self._handle_duration)
        self.player.observe_property('eof-reached', self._handle_eof)
        self.player.observe_property('idle-active', self._handle_idle)

        self.player.volume = 100

    def set_listener(self, listener: Optional[BackendListener]) -> None:
        self._listener = listener

    def load(self, url: str) -> None:
        """Open ``url`` paused; readiness arrives through the duration observer."""
        with self._lock:
            self._pending = True
            self._loaded = False
        logger.debug("mpv loading %s", url)
        self.player.pause = True
        self.player.play(url)

    def unload(self) -> None:
        with self._lock:
            self._pending = False
            self._loaded = False
        self.player.stop()

    def play(self) -> None:
        self.player.pause = False

    def pause(self) -> None:
        self.player.pause = True

    def seek(self, seconds: float) -> None:
        """Seek to absolute position in seconds."""
        if not self._loaded:
            return
        try:
            self.player.seek(seconds, reference='absolute')
        except Exception as e:
            logger.error("Error seeking: %s", e)

    @property
    def position(self) -> float:
        return self.player.time_pos or 0.0

    @property
    def duration(self) -> float:
        return self.player.duration or 0.0

    def add_position_observer(self, interval: float, callback: Callable[[float], None]) -> int:
        token = next(self._tokens)
        with self._lock:
            self._observers[token] = [interval, callback, 0.0]
        return token

    def remove_position_observer(self, token: int) -> None:
        with self._lock:
            self._observers.pop(token, None)

    def close(self) -> None:
        with self._lock:
            self._observers.clear()
        self._listener = None
        try:
            self.player.terminate()
        except Exception as e:
            logger.warning("Error terminating mpv: %s", e)

    # Event handlers (called from mpv's event thread)

    def _handle_time_update(self, name, value):
        """Fan time position out to observers, throttled per observer."""
        if value is None:
            return
        now = time.monotonic()
        with self._lock:
            due = []
            for entry in self._observers.values():
                if now - entry[2] >= entry[0]:
                    entry[2] = now
                    due.append(entry[1])
        for callback in due:
            try:
                callback(value)
            except Exception as e:
                logger.error("Error in position observer: %s", e)

    def _handle_duration(self, name, value):
        if value is None or self._listener is None:
            return
        with self._lock:
            first = self._pending
            self._pending = False
            self._loaded = True
        if first:
            self._listener.on_item_ready(value)
        else:
            self._listener.on_duration_changed(value)

    def _handle_eof(self, name, value):
        if not value or self._listener is None:
            return
        with self._lock:
            ended = self._loaded
            self._loaded = False
        if ended:
            logger.debug("mpv eof-reached")
            self._listener.on_item_ended()

    def _handle_idle(self, name, value):
        """
        Handle mpv dropping back to idle.
        Idle before the item became ready means it could not be opened;
        idle after that means the item played out.
        """
        if not value or self._listener is None:
            return
        with self._lock:
            failed = self._pending
            ended = self._loaded and not failed
            self._pending = False
            self._loaded = False
        if failed:
            logger.warning("mpv went idle before the item became ready")
            self._listener.on_item_failed("Could not open media")
        elif ended:
            logger.debug("mpv went idle while an item was loaded, treating as end")
            self._listener.on_item_ended()

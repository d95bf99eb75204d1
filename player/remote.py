"""
Remote control command targets and now-playing metadata.

System media controls (MPRIS on Linux, see ``player.mpris``) talk to the
player only through this command center, so the session does not depend on
any particular desktop integration.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class RemoteCommand(Enum):
    PLAY = "play"
    PAUSE = "pause"
    TOGGLE = "toggle"
    NEXT = "next"
    PREVIOUS = "previous"
    CHANGE_POSITION = "change_position"


@dataclass(frozen=True)
class NowPlayingInfo:
    track_id: str
    title: str
    artist: str
    duration: float
    elapsed: float
    rate: float
    artwork_url: Optional[str] = None

    @property
    def is_playing(self) -> bool:
        return self.rate > 0


class RemoteCommandCenter:
    """Registry of command handlers plus the published now-playing info."""

    def __init__(self):
        self._handlers: Dict[RemoteCommand, Callable[..., Any]] = {}
        self._now_playing: Optional[NowPlayingInfo] = None
        self._lock = threading.Lock()
        self._on_change_callbacks: List[Callable[[Optional[NowPlayingInfo]], None]] = []

    def register(self, command: RemoteCommand, handler: Callable[..., Any]) -> None:
        with self._lock:
            self._handlers[command] = handler

    def unregister(self, command: RemoteCommand) -> None:
        with self._lock:
            self._handlers.pop(command, None)

    def has_handler(self, command: RemoteCommand) -> bool:
        with self._lock:
            return command in self._handlers

    def dispatch(self, command: RemoteCommand, *args: Any) -> bool:
        """
        Invoke the handler for ``command``.
        Returns False when nothing is registered or the handler failed.
        """
        with self._lock:
            handler = self._handlers.get(command)
        if handler is None:
            logger.debug("No handler for remote command %s", command.value)
            return False
        try:
            handler(*args)
        except Exception as e:
            logger.error("Remote command %s failed: %s", command.value, e)
            return False
        return True

    @property
    def now_playing(self) -> Optional[NowPlayingInfo]:
        return self._now_playing

    def set_now_playing(self, info: NowPlayingInfo) -> None:
        self._now_playing = info
        self._notify_change()

    def clear_now_playing(self) -> None:
        if self._now_playing is None:
            return
        self._now_playing = None
        self._notify_change()

    def add_change_callback(self, callback: Callable[[Optional[NowPlayingInfo]], None]) -> None:
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable[[Optional[NowPlayingInfo]], None]) -> None:
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify_change(self) -> None:
        for callback in list(self._on_change_callbacks):
            try:
                callback(self._now_playing)
            except Exception as e:
                logger.error("Error in now-playing callback: %s", e)

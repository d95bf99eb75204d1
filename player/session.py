"""
Playback session manager.

The single owner of audio playback for the process: it holds the media
backend, the queue, the playback mode, and the state machine

    idle -> loading -> playing <-> paused
    playing -> completed   (sequential mode, end of queue)
    loading -> idle        (load failure)

Commands, backend callbacks and deferred work are serialized on one
re-entrant lock, so observers may issue commands from inside a notification.
"""

import logging
import math
import random
import threading
from functools import partial
from typing import Any, Callable, List, Optional, Sequence, Tuple

from shared.constants import COMPLETION_RELOAD_DELAY, COMPLETION_THRESHOLD, POSITION_UPDATE_INTERVAL
from shared.models import PlaybackMode, PlaybackState, Track
from .audio_session import AudioSession, AudioSessionError, Interruption, InterruptionType
from .backend import BackendListener, MediaBackend
from .events import PlaybackObserver
from .queue_manager import PlaybackQueue
from .remote import NowPlayingInfo, RemoteCommand, RemoteCommandCenter

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], Any]


def timer_scheduler(delay: float, fn: Callable[[], None]) -> threading.Timer:
    """Default scheduler: run ``fn`` on a daemon timer thread."""
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()
    return timer


class PlaybackSessionManager(BackendListener):
    """Owns the active media item, the queue and the playback state machine."""

    def __init__(
        self,
        backend: MediaBackend,
        audio_session: Optional[AudioSession] = None,
        remote: Optional[RemoteCommandCenter] = None,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
    ):
        self._backend = backend
        self._audio_session = audio_session or AudioSession()
        self._remote = remote
        self._schedule = scheduler or timer_scheduler
        self._queue = PlaybackQueue(rng=rng)

        self._lock = threading.RLock()
        self._observers: List[PlaybackObserver] = []
        self._state = PlaybackState.IDLE
        self._started = False

        # Bumped on every load/stop; stale callbacks and deferred work compare against it.
        self._generation = 0
        self._position_token: Any = None
        self._item_pending = False
        self._item_loaded = False
        self._autoplay = False
        self._completion_handled = False
        self._interrupted = False

        self._backend.set_listener(self)

    # Lifecycle

    def start(self) -> None:
        """Acquire the audio session and register remote command targets."""
        with self._lock:
            if self._started:
                return
            self._audio_session.set_category(AudioSession.CATEGORY_PLAYBACK)
            self._audio_session.add_interruption_handler(self._handle_interruption)

            if self._remote is not None:
                self._remote.register(RemoteCommand.PLAY, self.play)
                self._remote.register(RemoteCommand.PAUSE, self.pause)
                self._remote.register(RemoteCommand.TOGGLE, self.toggle_play_pause)
                self._remote.register(RemoteCommand.NEXT, self.skip_to_next)
                self._remote.register(RemoteCommand.PREVIOUS, self.skip_to_previous)
                self._remote.register(RemoteCommand.CHANGE_POSITION, self.seek)

            self._started = True
            logger.debug("Playback session started")

    def shutdown(self) -> None:
        """Pause playback and release observers, remote targets and the audio session."""
        with self._lock:
            if not self._started:
                return
            self._remove_position_observer()
            self._generation += 1
            if self._state is PlaybackState.PLAYING:
                self._backend.pause()
                self._set_state(PlaybackState.PAUSED)

            if self._remote is not None:
                for command in RemoteCommand:
                    self._remote.unregister(command)
                self._remote.clear_now_playing()

            self._audio_session.remove_interruption_handler(self._handle_interruption)
            self._audio_session.deactivate()
            self._started = False
            logger.debug("Playback session shut down")

    def __enter__(self) -> 'PlaybackSessionManager':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # Observers

    def add_observer(self, observer: PlaybackObserver) -> None:
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def remove_observer(self, observer: PlaybackObserver) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def _notify(self, event: str, *args: Any) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, event)(*args)
            except Exception as e:
                logger.error("Error in playback observer %s.%s: %s", type(observer).__name__, event, e)

    # Read-only state

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state is PlaybackState.PLAYING

    @property
    def current_track(self) -> Optional[Track]:
        return self._queue.current_track

    @property
    def current_index(self) -> int:
        return self._queue.current_index

    @property
    def queue(self) -> Tuple[Track, ...]:
        return self._queue.tracks

    @property
    def playback_mode(self) -> PlaybackMode:
        return self._queue.mode

    @property
    def current_time(self) -> float:
        if not self._item_loaded:
            return 0.0
        return self._backend.position

    @property
    def duration(self) -> float:
        """Backend duration, falling back to the track's declared duration."""
        duration = self._backend.duration if (self._item_loaded or self._item_pending) else 0.0
        if duration and math.isfinite(duration) and duration > 0:
            return duration
        track = self._queue.current_track
        return float(track.duration) if track else 0.0

    # Commands

    def set_queue(self, tracks: Sequence[Track], start_index: int = 0) -> None:
        """Replace the queue and load ``start_index`` without starting playback."""
        with self._lock:
            index = self._queue.replace(tracks, start_index)
            if index is None:
                logger.info("Empty queue, stopping playback")
                self.stop()
                return
            self._load_track(index, autoplay=False)

    def play_track_at_index(self, index: int) -> None:
        with self._lock:
            if not self._queue.set_index(index):
                logger.warning("Ignoring play request for index %d (queue size %d)", index, self._queue.size())
                return
            self._load_track(index, autoplay=True)

    def play(self) -> None:
        with self._lock:
            if self._queue.current_track is None:
                logger.debug("Nothing to play")
                return

            if self._state is PlaybackState.LOADING:
                self._autoplay = True
            elif self._state is PlaybackState.PLAYING:
                return
            elif self._state is PlaybackState.IDLE or not self._item_loaded:
                self._load_track(self._queue.current_index, autoplay=True)
            else:
                self._start_playback(restart=self._state is PlaybackState.COMPLETED)

    def pause(self) -> None:
        with self._lock:
            if self._state is PlaybackState.PLAYING:
                self._backend.pause()
                self._set_state(PlaybackState.PAUSED)
                self._update_now_playing()
            elif self._state is PlaybackState.LOADING:
                self._autoplay = False

    def toggle_play_pause(self) -> None:
        with self._lock:
            if self._state in (PlaybackState.IDLE, PlaybackState.PAUSED, PlaybackState.COMPLETED):
                self.play()
            elif self._state is PlaybackState.PLAYING:
                self.pause()
            # loading: ignored so a second tap cannot race the pending load

    def skip_to_next(self) -> None:
        with self._lock:
            if self._queue.is_empty():
                return
            index = self._queue.next_index()
            if index is None:
                self._complete_queue()
                return
            self._queue.set_index(index)
            self._load_track(index, autoplay=True)

    def skip_to_previous(self) -> None:
        with self._lock:
            index = self._queue.previous_index()
            if index is None:
                return
            self._queue.set_index(index)
            self._load_track(index, autoplay=True)

    def seek(self, seconds: float) -> None:
        """Move the playhead, clamped to [0, duration]."""
        with self._lock:
            if not self._item_loaded:
                return
            try:
                seconds = float(seconds)
            except (TypeError, ValueError):
                logger.warning("Ignoring seek to %r", seconds)
                return
            if not math.isfinite(seconds):
                logger.warning("Ignoring seek to %r", seconds)
                return

            target = min(max(seconds, 0.0), self.duration)
            self._backend.seek(target)
            self._notify("on_position_changed", target)
            self._update_now_playing()

    def set_playback_mode(self, mode: PlaybackMode) -> None:
        with self._lock:
            self._queue.set_mode(mode)
            logger.debug("Playback mode set to %s", mode.value)

    def stop(self) -> None:
        """Release the current item and return to idle."""
        with self._lock:
            self._remove_position_observer()
            self._generation += 1
            self._item_pending = False
            self._item_loaded = False
            self._autoplay = False
            self._backend.pause()
            self._backend.unload()
            self._set_state(PlaybackState.IDLE)
            self._notify("on_track_changed", None)
            if self._remote is not None:
                self._remote.clear_now_playing()

    # Backend events

    def on_item_ready(self, duration: float) -> None:
        with self._lock:
            if not self._item_pending:
                return
            self._item_pending = False
            self._item_loaded = True
            self._notify("on_duration_changed", self.duration)

            if self._state is not PlaybackState.LOADING:
                return
            if self._autoplay:
                self._start_playback()
            else:
                self._set_state(PlaybackState.PAUSED)
                self._update_now_playing()

    def on_item_failed(self, message: str) -> None:
        with self._lock:
            if not (self._item_pending or self._item_loaded):
                return
            self._fail_load(message)

    def on_duration_changed(self, duration: float) -> None:
        with self._lock:
            if not (self._item_pending or self._item_loaded):
                return
            self._notify("on_duration_changed", self.duration)
            self._update_now_playing()

    def on_item_ended(self) -> None:
        with self._lock:
            if self._item_loaded and self._state is PlaybackState.PLAYING:
                self._handle_completion()

    def _on_position(self, generation: int, position: float) -> None:
        with self._lock:
            if generation != self._generation or self._position_token is None:
                return
            self._notify("on_position_changed", position)

            duration = self.duration
            if (
                self._state is PlaybackState.PLAYING
                and duration > 0
                and position >= duration - COMPLETION_THRESHOLD
            ):
                self._handle_completion()

    # Internals

    def _set_state(self, state: PlaybackState) -> None:
        if state is self._state:
            return
        logger.debug("Playback state %s -> %s", self._state.value, state.value)
        self._state = state
        self._notify("on_state_changed", state)

    def _load_track(self, index: int, autoplay: bool) -> None:
        if not self._queue.is_valid_index(index):
            return
        track = self._queue.tracks[index]

        self._remove_position_observer()
        self._generation += 1
        generation = self._generation
        self._completion_handled = False
        self._autoplay = autoplay
        self._item_pending = True
        self._item_loaded = False

        self._set_state(PlaybackState.LOADING)
        self._notify("on_track_changed", track)
        self._update_now_playing()
        self._audio_session.set_category(AudioSession.CATEGORY_PLAYBACK)

        logger.info("Loading %s - %s", track.artist, track.title)
        try:
            self._backend.load(track.playback_url)
        except Exception as e:
            if generation == self._generation:
                self._fail_load(str(e))
            return

        if generation == self._generation and self._state is not PlaybackState.IDLE:
            self._add_position_observer()

    def _start_playback(self, restart: bool = False) -> None:
        try:
            self._audio_session.activate()
        except AudioSessionError as e:
            logger.error("Failed to activate audio session: %s", e)
            if self._state is PlaybackState.LOADING:
                self._set_state(PlaybackState.PAUSED)
            return

        if restart:
            self._completion_handled = False
            self._backend.seek(0.0)
        self._backend.play()
        self._interrupted = False
        self._add_position_observer()
        self._set_state(PlaybackState.PLAYING)
        self._update_now_playing()

    def _fail_load(self, message: str) -> None:
        track = self._queue.current_track
        logger.warning("Failed to load %s: %s", track.title if track else "item", message)
        self._remove_position_observer()
        self._item_pending = False
        self._item_loaded = False
        self._autoplay = False
        self._set_state(PlaybackState.IDLE)
        self._notify("on_playback_error", track, message)
        if self._remote is not None:
            self._remote.clear_now_playing()

    def _complete_queue(self) -> None:
        self._remove_position_observer()
        self._autoplay = False
        if self._state is PlaybackState.PLAYING:
            self._backend.pause()
        self._set_state(PlaybackState.COMPLETED)
        self._update_now_playing()

    def _handle_completion(self) -> None:
        if self._completion_handled:
            return
        self._completion_handled = True
        self._remove_position_observer()

        mode = self._queue.mode
        logger.debug("Track finished (%s)", mode.value)
        if mode is PlaybackMode.SINGLE_LOOP:
            self._defer(lambda: self._load_track(self._queue.current_index, autoplay=True))
        elif mode is PlaybackMode.SEQUENTIAL and self._queue.is_last():
            self._complete_queue()
        else:
            self._defer(self.skip_to_next)

    def _defer(self, action: Callable[[], None]) -> None:
        """Run ``action`` shortly, outside the backend's own notification."""
        generation = self._generation

        def run():
            with self._lock:
                if generation != self._generation:
                    logger.debug("Dropping stale deferred action")
                    return
                action()

        self._schedule(COMPLETION_RELOAD_DELAY, run)

    def _add_position_observer(self) -> None:
        if self._position_token is not None:
            return
        self._position_token = self._backend.add_position_observer(
            POSITION_UPDATE_INTERVAL, partial(self._on_position, self._generation)
        )

    def _remove_position_observer(self) -> None:
        if self._position_token is None:
            return
        self._backend.remove_position_observer(self._position_token)
        self._position_token = None

    def _update_now_playing(self) -> None:
        if self._remote is None:
            return
        track = self._queue.current_track
        if track is None or self._state is PlaybackState.IDLE:
            self._remote.clear_now_playing()
            return
        self._remote.set_now_playing(NowPlayingInfo(
            track_id=track.id,
            title=track.title,
            artist=track.artist,
            duration=self.duration,
            elapsed=self.current_time,
            rate=1.0 if self._state is PlaybackState.PLAYING else 0.0,
            artwork_url=track.image_url,
        ))

    def _handle_interruption(self, interruption: Interruption) -> None:
        with self._lock:
            if interruption.type is InterruptionType.BEGAN:
                if self._state is PlaybackState.PLAYING:
                    self.pause()
                    self._interrupted = True
            elif self._interrupted:
                self._interrupted = False
                if interruption.should_resume:
                    self.play()

"""
Queue Manager for the player.
Holds the ordered track list, the current index and the playback-mode policy
that picks the next index on skip or completion.
"""

from typing import Callable, List, Optional, Sequence, Tuple
import logging
import random
import threading

from shared.models import PlaybackMode, Track

logger = logging.getLogger(__name__)


class PlaybackQueue:
    """
    In-memory playback queue.
    Replaced wholesale by ``replace``; only the index moves afterwards.
    """

    def __init__(self, mode: PlaybackMode = PlaybackMode.SINGLE_LOOP, rng: Optional[random.Random] = None):
        self._tracks: Tuple[Track, ...] = ()
        self._index = 0
        self._mode = mode
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._on_change_callbacks: List[Callable[[], None]] = []

    @property
    def mode(self) -> PlaybackMode:
        return self._mode

    def set_mode(self, mode: PlaybackMode) -> None:
        with self._lock:
            self._mode = mode
        self._notify_change()

    @property
    def tracks(self) -> Tuple[Track, ...]:
        return self._tracks

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_track(self) -> Optional[Track]:
        with self._lock:
            if 0 <= self._index < len(self._tracks):
                return self._tracks[self._index]
            return None

    def is_empty(self) -> bool:
        return len(self._tracks) == 0

    def size(self) -> int:
        return len(self._tracks)

    def is_valid_index(self, index: int) -> bool:
        return 0 <= index < len(self._tracks)

    def is_last(self) -> bool:
        return self._index >= len(self._tracks) - 1

    def replace(self, tracks: Sequence[Track], start_index: int = 0) -> Optional[int]:
        """
        Replace the queue and clamp ``start_index`` into range.
        Returns the new current index, or None if the queue is now empty.
        """
        with self._lock:
            self._tracks = tuple(tracks)
            if not self._tracks:
                self._index = 0
                result = None
            else:
                self._index = min(max(start_index, 0), len(self._tracks) - 1)
                result = self._index
        logger.debug("Queue replaced: %d tracks, index %s", len(self._tracks), result)
        self._notify_change()
        return result

    def set_index(self, index: int) -> bool:
        with self._lock:
            if not 0 <= index < len(self._tracks):
                return False
            self._index = index
        self._notify_change()
        return True

    def clear(self) -> None:
        self.replace(())

    def next_index(self) -> Optional[int]:
        """
        Index a "next" command should move to.
        None means sequential playback has run past the end of the queue.
        """
        with self._lock:
            count = len(self._tracks)
            if count == 0:
                return None
            if self._mode is PlaybackMode.SHUFFLE:
                return self._rng.randrange(count)
            if self._mode is PlaybackMode.SINGLE_LOOP:
                return self._index
            if self._index >= count - 1:
                return None
            return self._index + 1

    def previous_index(self) -> Optional[int]:
        with self._lock:
            count = len(self._tracks)
            if count == 0:
                return None
            if self._mode is PlaybackMode.SHUFFLE:
                return self._rng.randrange(count)
            return max(0, self._index - 1)

    def add_change_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback to be called when the queue changes."""
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify_change(self) -> None:
        for callback in list(self._on_change_callbacks):
            try:
                callback()
            except Exception as e:
                logger.error("Error in queue change callback: %s", e)

"""
Listening statistics.
Measures how long each track was actually playing and reports it to the server.
"""

import logging
import time
from typing import Callable, Optional

from client.api import APIClient
from shared.models import PlaybackState, Track
from .events import PlaybackObserver

logger = logging.getLogger(__name__)

# Plays shorter than this are not reported
MIN_REPORTED_SECONDS = 1.0
# A play counts as completed when it got this close to the end
COMPLETION_MARGIN = 1.0


class PlayStatsRecorder(PlaybackObserver):
    """
    Session observer that posts play statistics on track change or completion.
    Reports go through the API worker pool so observers never wait on the network.
    """

    def __init__(self, api: APIClient, clock: Callable[[], float] = time.monotonic):
        self.api = api
        self._clock = clock
        self._track: Optional[Track] = None
        self._playing_since: Optional[float] = None
        self._listened = 0.0
        self._position = 0.0
        self._duration = 0.0

    @property
    def listened_seconds(self) -> float:
        """Seconds played on the current track so far, including a running interval."""
        running = self._clock() - self._playing_since if self._playing_since is not None else 0.0
        return self._listened + running

    def on_state_changed(self, state: PlaybackState) -> None:
        if state is PlaybackState.PLAYING:
            if self._playing_since is None:
                self._playing_since = self._clock()
            return

        self._close_interval()
        if state is PlaybackState.COMPLETED:
            self.flush(completed=True)

    def on_position_changed(self, position: float) -> None:
        self._position = position

    def on_duration_changed(self, duration: float) -> None:
        self._duration = duration

    def on_track_changed(self, track: Optional[Track]) -> None:
        self._close_interval()
        self.flush()
        self._track = track
        self._duration = track.duration if track else 0.0

    def flush(self, completed: Optional[bool] = None) -> None:
        """Report the current track's listening time and reset the counters."""
        self._close_interval()
        track, listened = self._track, self._listened
        if completed is None:
            completed = self._duration > 0 and self._position >= self._duration - COMPLETION_MARGIN

        self._listened = 0.0
        self._position = 0.0
        if track is None or listened < MIN_REPORTED_SECONDS:
            return

        secs = int(round(listened))
        self.api.submit(
            self.api.record_play_stats, track.id, secs, completed=completed,
            callback=lambda _: logger.debug("Recorded %ds for %s (completed=%s)", secs, track.id, completed),
            errback=lambda e: logger.warning("Failed to record play stats for %s: %s", track.id, e),
        )

    def _close_interval(self) -> None:
        if self._playing_since is None:
            return
        self._listened += self._clock() - self._playing_since
        self._playing_since = None

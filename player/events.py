"""Observer interface for playback session notifications."""

from typing import Optional

from shared.models import PlaybackState, Track


class PlaybackObserver:
    """
    Receives playback session events.
    Every method is optional; override only what you need.
    """

    def on_state_changed(self, state: PlaybackState) -> None:
        pass

    def on_position_changed(self, position: float) -> None:
        pass

    def on_duration_changed(self, duration: float) -> None:
        pass

    def on_track_changed(self, track: Optional[Track]) -> None:
        pass

    def on_playback_error(self, track: Optional[Track], message: str) -> None:
        """A load failed; the session is back to idle."""
        pass

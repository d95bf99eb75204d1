"""Abstract media backend interface used by the playback session."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class BackendListener(ABC):
    """Events a media backend reports about its current item."""

    @abstractmethod
    def on_item_ready(self, duration: float) -> None:
        """The loaded item can start playing."""
        pass

    @abstractmethod
    def on_item_failed(self, message: str) -> None:
        """The loaded item could not be opened or decoded."""
        pass

    @abstractmethod
    def on_duration_changed(self, duration: float) -> None:
        pass

    @abstractmethod
    def on_item_ended(self) -> None:
        """Playback reached the end of the item."""
        pass


class MediaBackend(ABC):
    """
    A single media player instance.

    ``load`` replaces the current item and reports readiness or failure
    through the listener, possibly before ``load`` returns.
    """

    @abstractmethod
    def set_listener(self, listener: Optional[BackendListener]) -> None:
        pass

    @abstractmethod
    def load(self, url: str) -> None:
        pass

    @abstractmethod
    def unload(self) -> None:
        """Drop the current item."""
        pass

    @abstractmethod
    def play(self) -> None:
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def seek(self, seconds: float) -> None:
        """Move the playhead to an absolute position."""
        pass

    @property
    @abstractmethod
    def position(self) -> float:
        pass

    @property
    @abstractmethod
    def duration(self) -> float:
        """Duration of the current item, 0 when unknown."""
        pass

    @abstractmethod
    def add_position_observer(self, interval: float, callback: Callable[[float], None]) -> Any:
        """Call ``callback(position)`` at most every ``interval`` seconds; returns a token."""
        pass

    @abstractmethod
    def remove_position_observer(self, token: Any) -> None:
        pass

    def close(self) -> None:
        """Release native resources."""
        pass

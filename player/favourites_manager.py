"""
Favourites Manager for the player.
Keeps a local mirror of the signed-in user's server-side favourites.
"""

import logging
import threading
from typing import Callable, List, Optional, Set

from client.api import APIClient
from client.models import User

logger = logging.getLogger(__name__)


class FavouritesManager:
    """
    Mirror of the server favourites, identified by audio id.
    The mirror only changes after the server accepted the change.
    """

    def __init__(self, api: APIClient):
        self.api = api
        self._favourites: Set[str] = set()
        self._lock = threading.Lock()
        self._on_change_callbacks: List[Callable[[], None]] = []

        self.sync_from_user(api.current_user)

    def sync_from_user(self, user: Optional[User]) -> None:
        """Reseed the mirror from a user snapshot (empty when signed out)."""
        with self._lock:
            self._favourites = {f.audio_id for f in user.favorites} if user else set()
        logger.debug("Favourites synced: %d items", len(self._favourites))
        self._notify_change()

    def refresh(self) -> None:
        """Reload favourites from the server, following every page."""
        ids: Set[str] = set()
        page = 1
        while True:
            result = self.api.get_favorites(page=page)
            ids.update(item.id for item in result.favorites)
            if not result.pagination.has_next:
                break
            page += 1
        with self._lock:
            self._favourites = ids
        self._notify_change()

    def add(self, audio_id: str) -> None:
        """Add to favourites. Raises APIError when the server rejects it."""
        self.api.add_favorite(audio_id)
        with self._lock:
            if audio_id in self._favourites:
                return
            self._favourites.add(audio_id)
        logger.info("Added to favourites: %s", audio_id)
        self._notify_change()

    def remove(self, audio_id: str) -> None:
        self.api.remove_favorite(audio_id)
        with self._lock:
            if audio_id not in self._favourites:
                return
            self._favourites.remove(audio_id)
        logger.info("Removed from favourites: %s", audio_id)
        self._notify_change()

    def toggle(self, audio_id: str) -> bool:
        """
        Toggle favourite status.
        Returns True if now favourited, False if unfavourited.
        """
        if self.is_favourite(audio_id):
            self.remove(audio_id)
            return False
        self.add(audio_id)
        return True

    def is_favourite(self, audio_id: str) -> bool:
        with self._lock:
            return audio_id in self._favourites

    def get_all(self) -> List[str]:
        """Get list of all favourite audio IDs."""
        with self._lock:
            return sorted(self._favourites)

    def size(self) -> int:
        with self._lock:
            return len(self._favourites)

    def add_change_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback to be called when favourites change."""
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
                logger.error("Error in favourites change callback: %s", e)

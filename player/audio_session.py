"""
Process-wide audio session.
Tracks activation and fans out interruption notifications (calls, other apps
taking the output) to the playback session.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class AudioSessionError(Exception):
    """The platform refused to activate the audio session."""


class InterruptionType(Enum):
    BEGAN = "began"
    ENDED = "ended"


@dataclass(frozen=True)
class Interruption:
    type: InterruptionType
    should_resume: bool = False


class AudioSession:
    """
    Audio session state holder.

    Platform glue calls ``post_interruption``; ``activator`` lets it veto
    activation by raising ``AudioSessionError``.
    """

    CATEGORY_PLAYBACK = "playback"

    def __init__(self, activator: Optional[Callable[[bool], None]] = None):
        self._activator = activator
        self._category: Optional[str] = None
        self._active = False
        self._lock = threading.Lock()
        self._handlers: List[Callable[[Interruption], None]] = []

    @property
    def category(self) -> Optional[str]:
        return self._category

    @property
    def is_active(self) -> bool:
        return self._active

    def set_category(self, category: str) -> None:
        self._category = category

    def activate(self) -> None:
        """Raises AudioSessionError when activation is refused."""
        if self._active:
            return
        if self._activator is not None:
            self._activator(True)
        self._active = True

    def deactivate(self) -> None:
        if not self._active:
            return
        if self._activator is not None:
            try:
                self._activator(False)
            except AudioSessionError as e:
                logger.warning("Failed to deactivate audio session: %s", e)
        self._active = False

    def add_interruption_handler(self, handler: Callable[[Interruption], None]) -> None:
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

    def remove_interruption_handler(self, handler: Callable[[Interruption], None]) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def post_interruption(self, interruption: Interruption) -> None:
        logger.info("Audio session interruption %s (resume=%s)", interruption.type.value, interruption.should_resume)
        if interruption.type is InterruptionType.BEGAN:
            self._active = False

        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(interruption)
            except Exception as e:
                logger.error("Error in interruption handler: %s", e)

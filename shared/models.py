"""
Data models for tracks and playback policy.

This module defines the core data structures shared by the network client
and the player: the immutable track record handed to the playback session,
and the enums describing playback mode and playback state.
"""

import dataclasses
from dataclasses import dataclass, asdict, field
from typing import Dict, Optional, Any, Tuple
from enum import Enum


class PlaybackMode(Enum):
    """Policy used to pick the next track after completion or on skip."""
    SINGLE_LOOP = "singleLoop"
    SEQUENTIAL = "sequence"
    SHUFFLE = "random"

    @classmethod
    def from_preference(cls, value: Optional[str]) -> 'PlaybackMode':
        """Map a server preference string to a mode, defaulting to single loop."""
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.SINGLE_LOOP


class PlaybackState(Enum):
    """Lifecycle of the active media item."""
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Track:
    """
    Represents a single playable audio track.

    Attributes:
        id: Catalog identifier
        title: Track title
        artist: Artist name
        duration: Declared duration in seconds
        audio_url: Remote stream URL
        image_url: Optional artwork URL
        scene_tags: Scenes the track belongs to (sleep, focus, ...)
        is_offline: Whether the track has been cached for offline playback
        local_path: Path of the cached file when offline
    """
    id: str
    title: str
    artist: str
    duration: float
    audio_url: str
    image_url: Optional[str] = None
    scene_tags: Tuple[str, ...] = field(default_factory=tuple)
    is_offline: bool = False
    local_path: Optional[str] = None

    @property
    def playback_url(self) -> str:
        """Local file when cached, remote stream otherwise."""
        if self.is_offline and self.local_path:
            return self.local_path
        return self.audio_url

    def to_dict(self) -> Dict[str, Any]:
        """Convert track to dictionary."""
        data = asdict(self)
        data['scene_tags'] = list(self.scene_tags)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Track':
        """Create Track from dictionary, filtering unknown keys."""
        field_names = {f.name for f in dataclasses.fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}
        if 'scene_tags' in filtered_data:
            filtered_data['scene_tags'] = tuple(filtered_data['scene_tags'] or ())
        return cls(**filtered_data)

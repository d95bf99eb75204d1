"""
Records exchanged with the QingYu catalog/user service.

The server speaks camelCase JSON; every record here keeps snake_case fields
and converts in ``from_dict``/``to_dict``. ``from_dict`` raises ``KeyError``,
``TypeError`` or ``ValueError`` on malformed payloads and the client turns
those into ``DecodingError``.
"""

import locale
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from shared.constants import DEFAULT_LANGUAGE
from shared.models import PlaybackMode, Track

T = TypeVar("T")


def _object(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise TypeError(f"expected object, got {type(data).__name__}")
    return data


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"expected list, got {type(value).__name__}")
    return [str(v) for v in value]


@dataclass
class Envelope(Generic[T]):
    """Uniform success/data/error wrapper returned by every endpoint."""
    success: bool
    message: Optional[str] = None
    code: Optional[str] = None
    data: Optional[T] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Envelope[Any]':
        raw = _object(raw)
        if not isinstance(raw.get("success"), bool):
            raise ValueError("envelope has no boolean 'success' field")
        return cls(
            success=raw["success"],
            message=raw.get("message"),
            code=raw.get("code"),
            data=raw.get("data"),
        )

    def map(self, decode: Callable[[Any], Any]) -> 'Envelope[Any]':
        data = decode(self.data) if self.data is not None else None
        return Envelope(success=self.success, message=self.message, code=self.code, data=data)


@dataclass
class UserPreferences:
    language: str = "auto"
    playback_mode: str = PlaybackMode.SINGLE_LOOP.value
    auto_cache: bool = False
    background_playback: bool = True
    lock_screen_control: bool = True
    audio_quality: str = "standard"
    cache_storage_limit: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserPreferences':
        data = _object(data)
        return cls(
            language=str(data["language"]),
            playback_mode=str(data["playbackMode"]),
            auto_cache=bool(data["autoCache"]),
            background_playback=bool(data["backgroundPlayback"]),
            lock_screen_control=bool(data["lockScreenControl"]),
            audio_quality=str(data["audioQuality"]),
            cache_storage_limit=int(data["cacheStorageLimit"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "language": self.language,
            "playbackMode": self.playback_mode,
            "autoCache": self.auto_cache,
            "backgroundPlayback": self.background_playback,
            "lockScreenControl": self.lock_screen_control,
            "audioQuality": self.audio_quality,
            "cacheStorageLimit": self.cache_storage_limit,
        }

    def to_playback_mode(self) -> PlaybackMode:
        return PlaybackMode.from_preference(self.playback_mode)

    def to_language(self) -> str:
        """Resolve "auto" to the system language."""
        if self.language != "auto":
            return self.language
        system_locale = locale.getlocale()[0]
        if system_locale:
            return system_locale.split("_")[0]
        return DEFAULT_LANGUAGE


@dataclass
class FavoriteAudio:
    audio_id: str
    added_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FavoriteAudio':
        data = _object(data)
        return cls(audio_id=str(data["audioId"]), added_at=str(data["addedAt"]))


@dataclass
class CachedAudio:
    audio_id: str
    cached_at: str
    file_size: int
    quality: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CachedAudio':
        data = _object(data)
        return cls(
            audio_id=str(data["audioId"]),
            cached_at=str(data["cachedAt"]),
            file_size=int(data["fileSize"]),
            quality=str(data["quality"]),
        )


@dataclass
class User:
    """Server-issued user snapshot. Replaced wholesale on each fetch."""
    id: str
    apple_user_id: str
    preferences: UserPreferences
    favorites: List[FavoriteAudio] = field(default_factory=list)
    cached_audios: List[CachedAudio] = field(default_factory=list)
    total_play_time: int = 0
    total_sessions: int = 0
    is_premium: bool = False
    favorite_count: Optional[int] = None
    cached_count: Optional[int] = None
    total_cache_size: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        data = _object(data)
        return cls(
            id=str(data["id"]),
            apple_user_id=str(data["appleUserId"]),
            preferences=UserPreferences.from_dict(data["preferences"]),
            favorites=[FavoriteAudio.from_dict(f) for f in data.get("favorites") or []],
            cached_audios=[CachedAudio.from_dict(c) for c in data.get("cachedAudios") or []],
            total_play_time=int(data.get("totalPlayTime", 0)),
            total_sessions=int(data.get("totalSessions", 0)),
            is_premium=bool(data.get("isPremium", False)),
            favorite_count=data.get("favoriteCount"),
            cached_count=data.get("cachedCount"),
            total_cache_size=data.get("totalCacheSize"),
        )


@dataclass
class AuthSession:
    """Login result: a bearer token distinct from the user id."""
    token: str
    user: User

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuthSession':
        data = _object(data)
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise ValueError("login response carried no token")
        return cls(token=token, user=User.from_dict(data["user"]))


@dataclass
class PlayStats:
    total_plays: int
    unique_players: int
    average_play_time: int
    completion_rate: int
    last_played_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayStats':
        data = _object(data)
        return cls(
            total_plays=int(data["totalPlays"]),
            unique_players=int(data["uniquePlayers"]),
            average_play_time=int(data["averagePlayTime"]),
            completion_rate=int(data["completionRate"]),
            last_played_at=data.get("lastPlayedAt"),
        )


@dataclass
class AudioURLs:
    standard: str
    high: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AudioURLs':
        data = _object(data)
        return cls(standard=str(data["standard"]), high=str(data["high"]))

    def for_quality(self, quality: str) -> str:
        return self.high if quality == "high" else self.standard


@dataclass
class CatalogAudio:
    """Audio record as served by the catalog."""
    id: str
    title: str
    artist: str
    duration: int
    scenes: str
    audio_urls: AudioURLs
    description: Optional[str] = None
    cover_image: Optional[str] = None
    instruments: List[str] = field(default_factory=list)
    nature_sounds: List[str] = field(default_factory=list)
    moods: Optional[List[str]] = None
    tempo: Optional[int] = None
    key: Optional[str] = None
    is_premium: bool = False
    is_featured: bool = False
    play_stats: Optional[PlayStats] = None
    favorite_count: int = 0
    cache_count: int = 0
    created_at: str = ""
    published_at: Optional[str] = None
    is_favorite: Optional[bool] = None
    is_cached: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CatalogAudio':
        data = _object(data)
        stats = data.get("playStats")
        moods = data.get("moods")
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            artist=str(data["artist"]),
            duration=int(data["duration"]),
            scenes=str(data["scenes"]),
            audio_urls=AudioURLs.from_dict(data["audioUrls"]),
            description=data.get("description"),
            cover_image=data.get("coverImage"),
            instruments=_str_list(data.get("instruments")),
            nature_sounds=_str_list(data.get("natureSounds")),
            moods=_str_list(moods) if moods is not None else None,
            tempo=data.get("tempo"),
            key=data.get("key"),
            is_premium=bool(data.get("isPremium", False)),
            is_featured=bool(data.get("isFeatured", False)),
            play_stats=PlayStats.from_dict(stats) if stats else None,
            favorite_count=int(data.get("favoriteCount", 0)),
            cache_count=int(data.get("cacheCount", 0)),
            created_at=str(data.get("createdAt", "")),
            published_at=data.get("publishedAt"),
            is_favorite=data.get("isFavorite"),
            is_cached=data.get("isCached"),
        )

    def to_track(self, local_path: Optional[str] = None, quality: str = "standard") -> Track:
        """Build the playable track; ``local_path`` marks it offline."""
        return Track(
            id=self.id,
            title=self.title,
            artist=self.artist,
            duration=float(self.duration),
            audio_url=self.audio_urls.for_quality(quality),
            image_url=self.cover_image,
            scene_tags=(self.scenes,) if self.scenes else (),
            is_offline=local_path is not None,
            local_path=local_path,
        )


@dataclass
class Pagination:
    current_page: int
    total: int
    total_pages: int
    limit: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Pagination':
        data = _object(data)
        return cls(
            current_page=int(data["currentPage"]),
            total=int(data["total"]),
            total_pages=int(data["totalPages"]),
            limit=int(data["limit"]),
        )

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages


def _audios(data: Dict[str, Any], key: str = "audios") -> List[CatalogAudio]:
    items = data[key]
    if not isinstance(items, list):
        raise TypeError(f"'{key}' must be a list")
    return [CatalogAudio.from_dict(a) for a in items]


@dataclass
class AudioPage:
    audios: List[CatalogAudio]
    pagination: Pagination

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AudioPage':
        data = _object(data)
        return cls(audios=_audios(data), pagination=Pagination.from_dict(data["pagination"]))


@dataclass
class FavoritesPage:
    favorites: List[CatalogAudio]
    pagination: Pagination

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FavoritesPage':
        data = _object(data)
        return cls(
            favorites=_audios(data, "favorites"),
            pagination=Pagination.from_dict(data["pagination"]),
        )


@dataclass
class SceneAudioPage:
    scene: str
    audios: List[CatalogAudio]
    pagination: Pagination

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SceneAudioPage':
        data = _object(data)
        return cls(
            scene=str(data["scene"]),
            audios=_audios(data),
            pagination=Pagination.from_dict(data["pagination"]),
        )


@dataclass
class SearchResults:
    query: str
    audios: List[CatalogAudio]
    pagination: Pagination

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchResults':
        data = _object(data)
        return cls(
            query=str(data["query"]),
            audios=_audios(data),
            pagination=Pagination.from_dict(data["pagination"]),
        )


@dataclass
class PopularAudio:
    period: str
    audios: List[CatalogAudio]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PopularAudio':
        data = _object(data)
        return cls(period=str(data["period"]), audios=_audios(data))


@dataclass
class RecommendedAudio:
    based_on: str
    audios: List[CatalogAudio]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecommendedAudio':
        data = _object(data)
        return cls(based_on=str(data["basedOn"]), audios=_audios(data))


@dataclass
class Scene:
    id: str
    name: str
    count: int
    translations: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Scene':
        data = _object(data)
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            count=int(data["count"]),
            translations=dict(data.get("translations") or {}),
        )

    def display_name(self, language: str) -> str:
        return self.translations.get(language, self.name)


@dataclass
class Instrument(Scene):
    pass


@dataclass
class DownloadInfo:
    download_url: str
    quality: str
    file_size: int
    expires_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DownloadInfo':
        data = _object(data)
        return cls(
            download_url=str(data["downloadUrl"]),
            quality=str(data["quality"]),
            file_size=int(data["fileSize"]),
            expires_at=str(data["expiresAt"]),
        )


def scenes_from_dict(data: Dict[str, Any]) -> List[Scene]:
    return [Scene.from_dict(s) for s in _object(data)["scenes"]]


def instruments_from_dict(data: Dict[str, Any]) -> List[Instrument]:
    return [Instrument.from_dict(i) for i in _object(data)["instruments"]]

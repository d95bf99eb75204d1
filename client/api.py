"""
HTTP client for the QingYu catalog/user service.

Every call goes through ``APIClient._request``, which attaches the bearer
token and device headers, decodes the ``{success, message, code, data}``
envelope and maps failures onto the ``client.errors`` taxonomy. The client
also keeps a small observable session snapshot (``current_user``,
``is_loading``, ``error``) for the presentation layer.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from shared.constants import DEFAULT_AUDIO_QUALITY, DEFAULT_PAGE_SIZE, NETWORK_WORKERS
from .config import ClientConfig
from .errors import (
    APIError,
    DecodingError,
    InvalidResponseError,
    NetworkError,
    ServerError,
    error_for_envelope,
    error_for_status,
)
from .models import (
    AudioPage,
    AuthSession,
    CatalogAudio,
    DownloadInfo,
    Envelope,
    FavoritesPage,
    Instrument,
    PopularAudio,
    RecommendedAudio,
    Scene,
    SceneAudioPage,
    SearchResults,
    User,
    UserPreferences,
    instruments_from_dict,
    scenes_from_dict,
)

logger = logging.getLogger(__name__)


class APIClient:
    """Typed operations over the catalog/user REST API."""

    def __init__(
        self,
        config: ClientConfig,
        session: Optional[requests.Session] = None,
        max_workers: int = NETWORK_WORKERS,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self.session.headers.update(config.device.headers())

        self._auth_token: Optional[str] = config.store.auth_token
        self._current_user: Optional[User] = None
        self._error: Optional[APIError] = None
        self._in_flight = 0

        self._lock = threading.RLock()
        self._on_change_callbacks: List[Callable[[str], None]] = []
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    # Observable session state

    @property
    def current_user(self) -> Optional[User]:
        return self._current_user

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    @property
    def error(self) -> Optional[APIError]:
        return self._error

    @property
    def is_authenticated(self) -> bool:
        return self._auth_token is not None

    def add_change_callback(self, callback: Callable[[str], None]) -> None:
        """Register a callback receiving the name of the field that changed."""
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable[[str], None]) -> None:
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify_change(self, name: str) -> None:
        for callback in list(self._on_change_callbacks):
            try:
                callback(name)
            except Exception as e:
                logger.error("Error in API change callback: %s", e)

    def _set_current_user(self, user: Optional[User]) -> None:
        with self._lock:
            self._current_user = user
        self._notify_change("current_user")

    def _set_error(self, error: Optional[APIError]) -> None:
        with self._lock:
            self._error = error
        self._notify_change("error")

    def _begin_request(self) -> None:
        with self._lock:
            self._in_flight += 1
            self._error = None
        self._notify_change("is_loading")

    def _end_request(self) -> None:
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
        self._notify_change("is_loading")

    # Token handling

    def _save_auth_token(self, token: str) -> None:
        with self._lock:
            self._auth_token = token
            self.config.store.auth_token = token

    def _remove_auth_token(self) -> None:
        with self._lock:
            self._auth_token = None
            self.config.store.auth_token = None

    # Request primitive

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        decode: Optional[Callable[[Any], Any]] = None,
        require: Optional[str] = None,
    ) -> Envelope:
        """Perform one call; ``require`` names the payload when ``data`` must be present."""
        url = f"{self.config.api_root}{endpoint}"
        headers = {}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"

        self._begin_request()
        try:
            try:
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=body,
                    headers=headers,
                    timeout=self.config.timeout,
                )
            except requests.RequestException as e:
                raise NetworkError(str(e)) from e

            envelope = self._parse_envelope(response, url)
            if decode is not None:
                try:
                    envelope = envelope.map(decode)
                except (KeyError, TypeError, ValueError) as e:
                    raise DecodingError(f"{method} {endpoint}: {e}") from e
            if require is not None and envelope.data is None:
                raise DecodingError(f"response carried no {require}")
            return envelope
        except APIError as e:
            logger.warning("%s %s failed: %s", method, endpoint, e)
            self._set_error(e)
            raise
        finally:
            self._end_request()

    def _parse_envelope(self, response: requests.Response, url: str) -> Envelope:
        try:
            raw = response.json()
        except ValueError:
            raw = None

        envelope = None
        if isinstance(raw, dict):
            try:
                envelope = Envelope.from_dict(raw)
            except (TypeError, ValueError):
                envelope = None

        message = (envelope.message if envelope else None) or response.reason or f"HTTP {response.status_code}"
        code = envelope.code if envelope else None

        status_error = error_for_status(response.status_code, message, code)
        if status_error is not None:
            raise status_error

        if envelope is None:
            if response.status_code >= 500:
                raise ServerError(message, code)
            raise InvalidResponseError(f"Malformed response from {url} (HTTP {response.status_code})")

        if not envelope.success:
            raise error_for_envelope(envelope.message, envelope.code)

        if response.status_code >= 400:
            raise ServerError(message, code)

        return envelope

    def _language(self, language: Optional[str]) -> str:
        return language or self.config.language

    # Background execution

    def submit(
        self,
        fn: Callable[..., Any],
        *args: Any,
        callback: Optional[Callable[[Any], None]] = None,
        errback: Optional[Callable[[APIError], None]] = None,
        **kwargs: Any,
    ) -> Future:
        """
        Run an operation on the worker pool.

        ``callback``/``errback`` are marshalled through ``config.dispatch``.
        """
        def _run():
            try:
                result = fn(*args, **kwargs)
            except APIError as e:
                if errback:
                    self.config.dispatch(lambda: errback(e))
                raise
            if callback:
                self.config.dispatch(lambda: callback(result))
            return result

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="qingyu-api"
                )
            return self._executor.submit(_run)

    def close(self) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None
        self.session.close()

    # User authentication API

    def authenticate(
        self,
        apple_user_id: str,
        device_info: Optional[Dict[str, Any]] = None,
        preferences: Optional[UserPreferences] = None,
    ) -> AuthSession:
        """Log in and persist the issued bearer token."""
        body: Dict[str, Any] = {"appleUserId": apple_user_id}
        if device_info is not None:
            body["deviceInfo"] = device_info
        if preferences is not None:
            body["preferences"] = preferences.to_dict()

        auth = self._request(
            "POST", "/users/auth/login", body=body, decode=AuthSession.from_dict, require="session"
        ).data

        self._save_auth_token(auth.token)
        self._set_current_user(auth.user)
        logger.info("Authenticated as user %s", auth.user.id)
        return auth

    def get_user_profile(self) -> User:
        user = self._request("GET", "/users/profile", decode=User.from_dict, require="user").data
        self._set_current_user(user)
        return user

    def update_preferences(self, preferences: UserPreferences) -> Optional[UserPreferences]:
        return self._request(
            "PUT",
            "/users/preferences",
            body={"preferences": preferences.to_dict()},
            decode=UserPreferences.from_dict,
        ).data

    def logout(self) -> None:
        """Invalidate the session server-side; local state is cleared regardless."""
        try:
            self._request("POST", "/users/logout")
        finally:
            self._remove_auth_token()
            self._set_current_user(None)
            logger.info("Logged out")

    # Favourites API

    def add_favorite(self, audio_id: str) -> Optional[Dict[str, Any]]:
        return self._request("POST", "/users/favorites", body={"audioId": audio_id}).data

    def remove_favorite(self, audio_id: str) -> Optional[Dict[str, Any]]:
        return self._request("DELETE", "/users/favorites", body={"audioId": audio_id}).data

    def get_favorites(self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> FavoritesPage:
        return self._request(
            "GET",
            "/users/favorites",
            params={"page": page, "limit": limit},
            decode=FavoritesPage.from_dict,
            require="favorites",
        ).data

    # Audio catalog API

    def list_audio(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        scene: Optional[str] = None,
        language: Optional[str] = None,
        instruments: Optional[List[str]] = None,
        nature_sounds: Optional[List[str]] = None,
        search: Optional[str] = None,
    ) -> AudioPage:
        params: Dict[str, Any] = {"page": page, "limit": limit, "language": self._language(language)}
        if scene:
            params["scene"] = scene
        if instruments:
            params["instruments"] = ",".join(instruments)
        if nature_sounds:
            params["natureSounds"] = ",".join(nature_sounds)
        if search:
            params["search"] = search

        return self._request("GET", "/audio", params=params, decode=AudioPage.from_dict, require="audio list").data

    def get_audio_by_scene(
        self,
        scene: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        language: Optional[str] = None,
    ) -> SceneAudioPage:
        return self._request(
            "GET",
            f"/audio/scene/{quote(scene, safe='')}",
            params={"page": page, "limit": limit, "language": self._language(language)},
            decode=SceneAudioPage.from_dict,
            require="scene audio",
        ).data

    def search_audio(
        self,
        query: str,
        language: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> SearchResults:
        return self._request(
            "GET",
            "/audio/search",
            params={"q": query, "language": self._language(language), "page": page, "limit": limit},
            decode=SearchResults.from_dict,
            require="search results",
        ).data

    def get_audio_detail(self, audio_id: str, language: Optional[str] = None) -> CatalogAudio:
        return self._request(
            "GET",
            f"/audio/{quote(audio_id, safe='')}",
            params={"language": self._language(language)},
            decode=CatalogAudio.from_dict,
            require="audio",
        ).data

    def get_download_url(self, audio_id: str, quality: str = DEFAULT_AUDIO_QUALITY) -> DownloadInfo:
        return self._request(
            "GET",
            f"/audio/{quote(audio_id, safe='')}/download",
            params={"quality": quality, "action": "cache"},
            decode=DownloadInfo.from_dict,
            require="download url",
        ).data

    def get_popular_audio(
        self, period: str = "30d", language: Optional[str] = None, limit: int = DEFAULT_PAGE_SIZE
    ) -> PopularAudio:
        return self._request(
            "GET",
            "/audio/popular",
            params={"period": period, "language": self._language(language), "limit": limit},
            decode=PopularAudio.from_dict,
            require="popular audio",
        ).data

    def get_recommended_audio(
        self, based_on: Optional[str] = None, language: Optional[str] = None, limit: int = DEFAULT_PAGE_SIZE
    ) -> RecommendedAudio:
        params: Dict[str, Any] = {"language": self._language(language), "limit": limit}
        if based_on:
            params["basedOn"] = based_on
        return self._request(
            "GET", "/audio/recommended", params=params, decode=RecommendedAudio.from_dict, require="recommendations"
        ).data

    def get_scenes(self, language: Optional[str] = None) -> List[Scene]:
        return self._request(
            "GET",
            "/audio/scenes",
            params={"language": self._language(language)},
            decode=scenes_from_dict,
            require="scenes",
        ).data

    def get_instruments(self, language: Optional[str] = None) -> List[Instrument]:
        return self._request(
            "GET",
            "/audio/instruments",
            params={"language": self._language(language)},
            decode=instruments_from_dict,
            require="instruments",
        ).data

    # Play statistics API

    def record_play_stats(self, audio_id: str, duration: int, completed: bool = False) -> Optional[Dict[str, Any]]:
        body = {
            "audioId": audio_id,
            "duration": int(duration),
            "completed": completed,
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        return self._request("POST", f"/audio/{quote(audio_id, safe='')}/stats", body=body).data

"""Configuration for the API client: server location, device headers, token storage."""

import os
import platform
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from dotenv import load_dotenv

from shared.constants import (
    API_VERSION_PATH,
    APP_VERSION,
    DEBUG_API_URL,
    DEFAULT_LANGUAGE,
    DEFAULT_NETWORK_TIMEOUT,
    HEADER_APP_VERSION,
    HEADER_DEVICE_ID,
    HEADER_DEVICE_MODEL,
    HEADER_OS_VERSION,
    RELEASE_API_URL,
)
from shared.local_store import LocalStore


def _run_inline(fn: Callable[[], None]) -> None:
    fn()


@dataclass(frozen=True)
class DeviceInfo:
    """Identifies the calling device in request headers."""
    device_id: str
    model: str
    os_version: str
    app_version: str = APP_VERSION

    @classmethod
    def detect(cls, store: LocalStore) -> 'DeviceInfo':
        return cls(
            device_id=store.device_id,
            model=platform.machine() or "unknown",
            os_version=f"{platform.system()} {platform.release()}".strip(),
        )

    def headers(self) -> Dict[str, str]:
        return {
            HEADER_DEVICE_ID: self.device_id,
            HEADER_DEVICE_MODEL: self.model,
            HEADER_OS_VERSION: self.os_version,
            HEADER_APP_VERSION: self.app_version,
        }

    def to_dict(self) -> Dict[str, str]:
        return {
            "deviceId": self.device_id,
            "model": self.model,
            "osVersion": self.os_version,
            "appVersion": self.app_version,
        }


@dataclass
class ClientConfig:
    """
    Everything the API client needs from its environment.

    ``dispatch`` runs callbacks from ``APIClient.submit`` on the caller's
    execution context; the default runs them on the worker thread.
    """
    base_url: str
    store: LocalStore
    device: DeviceInfo
    api_version: str = API_VERSION_PATH
    timeout: float = DEFAULT_NETWORK_TIMEOUT
    language: str = DEFAULT_LANGUAGE
    dispatch: Callable[[Callable[[], None]], None] = field(default=_run_inline)

    def __post_init__(self):
        self.base_url = self.base_url.rstrip("/")
        if not self.api_version.startswith("/"):
            self.api_version = "/" + self.api_version

    @property
    def api_root(self) -> str:
        return f"{self.base_url}{self.api_version}"

    @classmethod
    def from_env(cls, store: Optional[LocalStore] = None) -> 'ClientConfig':
        """
        Build configuration from environment variables (and a .env file).

        QINGYU_API_URL overrides the server; otherwise QINGYU_DEBUG selects
        the local development server.
        """
        load_dotenv()
        store = store or LocalStore()

        debug = os.getenv("QINGYU_DEBUG", "").lower() in ("1", "true", "yes")
        base_url = os.getenv("QINGYU_API_URL") or (DEBUG_API_URL if debug else RELEASE_API_URL)
        timeout = float(os.getenv("QINGYU_TIMEOUT", DEFAULT_NETWORK_TIMEOUT))
        language = os.getenv("QINGYU_LANGUAGE") or store.language

        return cls(
            base_url=base_url,
            store=store,
            device=DeviceInfo.detect(store),
            timeout=timeout,
            language=language,
        )

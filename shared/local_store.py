"""
Local key-value store for client state.
Persists the auth token, anonymous identifiers, and simple flags as JSON.
"""

from typing import Any, Dict, Optional, Union
from pathlib import Path
import json
import logging
import os
import tempfile
import threading
import uuid

from shared.constants import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_LANGUAGE,
    KEY_ANONYMOUS_USER_ID,
    KEY_AUTH_TOKEN,
    KEY_DEVICE_ID,
    KEY_LANGUAGE,
    LOCAL_STORE_FILENAME,
)
from shared.crypto import CredentialManager

logger = logging.getLogger(__name__)


class LocalStore:
    """
    Simple JSON-backed key-value store.
    Every write is flushed to disk immediately; there is no schema versioning.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, key: Optional[bytes] = None):
        if path is None:
            path = Path(DEFAULT_CONFIG_DIR).expanduser() / LOCAL_STORE_FILENAME
        self._path = Path(path).expanduser()
        self._key = key
        self._data: Dict[str, Any] = {}
        self._lock = threading.Lock()

        self._load_from_file()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._save_to_file()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._save_to_file()

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        return value if isinstance(value, bool) else default

    def set_bool(self, key: str, value: bool) -> None:
        self.set(key, bool(value))

    # Typed accessors

    @property
    def auth_token(self) -> Optional[str]:
        """Decrypted auth token, or None if absent or unreadable."""
        encrypted = self.get(KEY_AUTH_TOKEN)
        if not encrypted:
            return None
        return CredentialManager.decrypt(encrypted, self._key)

    @auth_token.setter
    def auth_token(self, token: Optional[str]) -> None:
        if token is None:
            self.delete(KEY_AUTH_TOKEN)
        else:
            self.set(KEY_AUTH_TOKEN, CredentialManager.encrypt(token, self._key))

    @property
    def anonymous_user_id(self) -> str:
        """Stable anonymous identifier, generated on first access."""
        return self._get_or_create_id(KEY_ANONYMOUS_USER_ID)

    @property
    def device_id(self) -> str:
        return self._get_or_create_id(KEY_DEVICE_ID)

    @property
    def language(self) -> str:
        return self.get(KEY_LANGUAGE) or DEFAULT_LANGUAGE

    @language.setter
    def language(self, value: str) -> None:
        self.set(KEY_LANGUAGE, value)

    def _get_or_create_id(self, key: str) -> str:
        with self._lock:
            value = self._data.get(key)
            if not value:
                value = str(uuid.uuid4())
                self._data[key] = value
                self._save_to_file()
            return value

    def _save_to_file(self) -> None:
        """Write the store to disk via a temp file and rename. Caller holds the lock."""
        tmp_path = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                'w', encoding='utf-8', dir=self._path.parent,
                prefix=self._path.name + '.', suffix='.tmp', delete=False,
            ) as f:
                tmp_path = f.name
                json.dump(self._data, f, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as e:
            logger.error("Error saving local store to %s: %s", self._path, e)
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def _load_from_file(self) -> None:
        if not self._path.exists():
            logger.debug("No local store at %s, starting fresh", self._path)
            return

        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Error reading local store %s: %s, starting fresh", self._path, e)
            return

        if not isinstance(data, dict):
            logger.warning("Invalid local store format in %s, starting fresh", self._path)
            return

        self._data = data

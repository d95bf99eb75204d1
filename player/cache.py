"""
Offline audio cache.
Implements an LRU (Least Recently Used) eviction policy over a SQLite index.
"""

import dataclasses
import logging
import os
import shutil
import sqlite3
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from client.errors import NetworkError
from shared.constants import (
    DEFAULT_CACHE_DIR,
    DEFAULT_CACHE_SIZE_GB,
    DEFAULT_DOWNLOAD_CHUNK_SIZE,
    DEFAULT_NETWORK_TIMEOUT,
)
from shared.models import Track

logger = logging.getLogger(__name__)


class CacheManager:
    """Manages downloaded audio files with LRU eviction."""

    def __init__(self, cache_dir: str = DEFAULT_CACHE_DIR + "/media",
                 max_size_gb: float = DEFAULT_CACHE_SIZE_GB,
                 session: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.time):
        self.cache_dir = Path(cache_dir).expanduser()
        self.max_size_bytes = int(max_size_gb * 1024 * 1024 * 1024)
        self.db_path = self.cache_dir.parent / "cache_index.db"
        self.session = session or requests.Session()
        self._clock = clock

        self.lock = threading.Lock()
        self._init_cache()
        self._init_db()

    def _init_cache(self):
        """Ensure cache directory exists."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _init_db(self):
        with self.lock:
            self.conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=20
            )
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA synchronous=NORMAL")

            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    audio_id TEXT PRIMARY KEY,
                    file_path TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    last_accessed REAL NOT NULL,
                    access_count INTEGER DEFAULT 1
                )
            """)
            self.conn.commit()

    def close(self):
        with self.lock:
            self.conn.close()

    def get_cached_path(self, audio_id: str) -> Optional[str]:
        """
        Get path to cached file if exists. Updates access time.
        """
        with self.lock:
            try:
                row = self.conn.execute(
                    "SELECT file_path FROM cache_entries WHERE audio_id = ?",
                    (audio_id,)
                ).fetchone()
                if not row:
                    return None

                file_path = row[0]
                if os.path.exists(file_path):
                    self.conn.execute("""
                        UPDATE cache_entries
                        SET last_accessed = ?, access_count = access_count + 1
                        WHERE audio_id = ?
                    """, (self._clock(), audio_id))
                    self.conn.commit()
                    return file_path

                # Orphaned entry cleanup
                self.conn.execute("DELETE FROM cache_entries WHERE audio_id = ?", (audio_id,))
                self.conn.commit()
            except sqlite3.OperationalError as e:
                logger.warning("Cache index busy: %s", e)
        return None

    def add_to_cache(self, audio_id: str, source_path: str, move: bool = False) -> str:
        """
        Add a file to the cache. Evicts old files if needed.
        """
        file_size = os.path.getsize(source_path)
        self._ensure_space(file_size)

        suffix = Path(source_path).suffix or ".mp3"
        target_path = self.cache_dir / f"{audio_id}{suffix}"

        if move:
            shutil.move(source_path, target_path)
        else:
            shutil.copy2(source_path, target_path)

        with self.lock:
            self.conn.execute("""
                INSERT OR REPLACE INTO cache_entries
                (audio_id, file_path, file_size, last_accessed, access_count)
                VALUES (?, ?, ?, ?, 1)
            """, (audio_id, str(target_path), file_size, self._clock()))
            self.conn.commit()

        logger.debug("Cached %s (%d bytes)", audio_id, file_size)
        return str(target_path)

    def download(self, audio_id: str, url: str, suffix: str = ".mp3") -> str:
        """
        Stream ``url`` into the cache and return the cached path.
        Raises NetworkError when the transfer fails.
        """
        fd, tmp_path = tempfile.mkstemp(prefix=f".{audio_id}-", suffix=suffix, dir=self.cache_dir)
        try:
            with os.fdopen(fd, "wb") as out:
                with self.session.get(url, stream=True, timeout=DEFAULT_NETWORK_TIMEOUT) as resp:
                    resp.raise_for_status()
                    for chunk in resp.iter_content(chunk_size=DEFAULT_DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            out.write(chunk)
        except requests.RequestException as e:
            os.unlink(tmp_path)
            logger.error("Download of %s failed: %s", audio_id, e)
            raise NetworkError(str(e)) from e
        except OSError:
            os.unlink(tmp_path)
            raise

        logger.info("Downloaded %s", audio_id)
        return self.add_to_cache(audio_id, tmp_path, move=True)

    def resolve(self, track: Track) -> Track:
        """Return ``track`` marked offline when a cached copy exists."""
        path = self.get_cached_path(track.id)
        if path is None:
            return track
        return dataclasses.replace(track, is_offline=True, local_path=path)

    def prune_to_size(self, target_bytes: int):
        """Prune cache to a specific size (LRU)."""
        with self.lock:
            result = self.conn.execute("SELECT SUM(file_size) FROM cache_entries").fetchone()[0]
            current_size = result if result else 0
            if current_size <= target_bytes:
                return

            # Oldest first
            rows = self.conn.execute(
                "SELECT audio_id, file_path, file_size FROM cache_entries ORDER BY last_accessed ASC"
            ).fetchall()

            pruned_count = 0
            for audio_id, file_path, size in rows:
                try:
                    if os.path.exists(file_path):
                        os.remove(file_path)
                except OSError as e:
                    logger.warning("Could not remove %s: %s", file_path, e)

                self.conn.execute("DELETE FROM cache_entries WHERE audio_id = ?", (audio_id,))
                current_size -= size
                pruned_count += 1
                if current_size <= target_bytes:
                    break
            self.conn.commit()
            logger.info("Cache: pruned %d files", pruned_count)

    def _ensure_space(self, new_bytes: int):
        """Free up space if needed using LRU policy."""
        self.prune_to_size(self.max_size_bytes - new_bytes)

    def get_current_usage(self) -> int:
        """Get total bytes used by cache."""
        with self.lock:
            result = self.conn.execute("SELECT SUM(file_size) FROM cache_entries").fetchone()[0]
            return result if result else 0

    def count(self) -> int:
        with self.lock:
            return self.conn.execute("SELECT COUNT(*) FROM cache_entries").fetchone()[0]

    def clear_cache(self):
        """Delete all cached files and reset the index."""
        try:
            shutil.rmtree(self.cache_dir)
        except OSError as e:
            logger.warning("Could not remove cache dir: %s", e)
        self._init_cache()

        with self.lock:
            self.conn.execute("DELETE FROM cache_entries")
            self.conn.commit()

    def remove_track(self, audio_id: str):
        """
        Remove a specific item from the cache (file and index entry).
        """
        with self.lock:
            row = self.conn.execute(
                "SELECT file_path FROM cache_entries WHERE audio_id = ?",
                (audio_id,)
            ).fetchone()

            if row:
                try:
                    if os.path.exists(row[0]):
                        os.remove(row[0])
                except OSError as e:
                    logger.warning("Could not remove %s: %s", row[0], e)

            self.conn.execute("DELETE FROM cache_entries WHERE audio_id = ?", (audio_id,))
            self.conn.commit()

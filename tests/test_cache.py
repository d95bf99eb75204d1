import itertools
import os
from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_track
from client.errors import NetworkError
from player.cache import CacheManager


@pytest.fixture
def clock():
    counter = itertools.count(1)
    return lambda: float(next(counter))


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def cache(tmp_path, http, clock):
    manager = CacheManager(cache_dir=str(tmp_path / "media"), max_size_gb=1, session=http, clock=clock)
    yield manager
    manager.close()


def _source(tmp_path, name, size):
    path = tmp_path / name
    path.write_bytes(b"x" * size)
    return str(path)


def test_add_and_lookup(cache, tmp_path):
    source = _source(tmp_path, "a1.mp3", 100)
    cached = cache.add_to_cache("a1", source)

    assert os.path.exists(source)
    assert cache.get_cached_path("a1") == cached
    assert cache.get_current_usage() == 100
    assert cache.count() == 1


def test_missing_file_is_cleaned_up(cache, tmp_path):
    cached = cache.add_to_cache("a1", _source(tmp_path, "a1.mp3", 10))
    os.remove(cached)

    assert cache.get_cached_path("a1") is None
    assert cache.count() == 0


def test_prune_evicts_least_recently_used(cache, tmp_path):
    cache.add_to_cache("old", _source(tmp_path, "old.mp3", 100))
    cache.add_to_cache("new", _source(tmp_path, "new.mp3", 100))
    cache.add_to_cache("touched", _source(tmp_path, "touched.mp3", 100))
    cache.get_cached_path("old")

    cache.prune_to_size(200)

    assert cache.get_cached_path("new") is None
    assert cache.get_cached_path("old") is not None
    assert cache.get_cached_path("touched") is not None
    assert cache.get_current_usage() == 200


def test_add_evicts_when_over_limit(tmp_path, http, clock):
    cache = CacheManager(cache_dir=str(tmp_path / "media"), max_size_gb=250 / 1024**3, session=http, clock=clock)
    cache.add_to_cache("a", _source(tmp_path, "a.mp3", 100))
    cache.add_to_cache("b", _source(tmp_path, "b.mp3", 100))
    cache.add_to_cache("c", _source(tmp_path, "c.mp3", 100))

    assert cache.get_cached_path("a") is None
    assert cache.get_current_usage() == 200
    cache.close()


def test_remove_track(cache, tmp_path):
    cached = cache.add_to_cache("a1", _source(tmp_path, "a1.mp3", 10))
    cache.remove_track("a1")

    assert not os.path.exists(cached)
    assert cache.get_cached_path("a1") is None


def test_clear_cache(cache, tmp_path):
    cache.add_to_cache("a1", _source(tmp_path, "a1.mp3", 10))
    cache.clear_cache()

    assert cache.get_current_usage() == 0
    assert cache.cache_dir.exists()


def _streaming_response(chunks):
    response = MagicMock()
    response.__enter__.return_value = response
    response.iter_content.return_value = chunks
    return response


def test_download_streams_into_cache(cache, http):
    http.get.return_value = _streaming_response([b"abc", b"", b"def"])

    path = cache.download("a1", "https://cdn/a1.mp3")

    http.get.assert_called_once()
    assert http.get.call_args.kwargs["stream"] is True
    with open(path, "rb") as f:
        assert f.read() == b"abcdef"
    assert cache.get_cached_path("a1") == path
    assert [p for p in os.listdir(cache.cache_dir) if p.startswith(".")] == []


def test_download_failure_raises_network_error(cache, http):
    response = _streaming_response([])
    response.raise_for_status.side_effect = requests.HTTPError("403 Forbidden")
    http.get.return_value = response

    with pytest.raises(NetworkError):
        cache.download("a1", "https://cdn/a1.mp3")

    assert cache.get_cached_path("a1") is None
    assert os.listdir(cache.cache_dir) == []


def test_resolve_marks_cached_tracks_offline(cache, tmp_path):
    track = make_track(1)
    assert cache.resolve(track) is track

    cached = cache.add_to_cache(track.id, _source(tmp_path, "t.mp3", 10))
    resolved = cache.resolve(track)
    assert resolved.is_offline
    assert resolved.playback_url == cached

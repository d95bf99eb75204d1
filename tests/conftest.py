"""Test configuration and fixtures"""

import itertools
import json
from typing import Optional

import pytest
import requests
from cryptography.fernet import Fernet

from player.backend import MediaBackend
from player.events import PlaybackObserver
from shared.local_store import LocalStore
from shared.models import Track


class FakeBackend(MediaBackend):
    """In-memory media backend driven by the test."""

    def __init__(self, auto_ready: Optional[float] = None):
        self.auto_ready = auto_ready
        self.fail_on_load: Optional[str] = None
        self.listener = None
        self.loaded_urls = []
        self.seeks = []
        self.play_calls = 0
        self.pause_calls = 0
        self.unload_calls = 0
        self.playing = False
        self.observers = {}
        self._tokens = itertools.count(1)
        self._position = 0.0
        self._duration = 0.0

    def set_listener(self, listener):
        self.listener = listener

    def load(self, url):
        self.loaded_urls.append(url)
        self.playing = False
        self._position = 0.0
        self._duration = 0.0
        if self.fail_on_load is not None:
            self.listener.on_item_failed(self.fail_on_load)
        elif self.auto_ready is not None:
            self.finish_loading(self.auto_ready)

    def unload(self):
        self.unload_calls += 1

    def play(self):
        self.play_calls += 1
        self.playing = True

    def pause(self):
        self.pause_calls += 1
        self.playing = False

    def seek(self, seconds):
        self.seeks.append(seconds)
        self._position = seconds

    @property
    def position(self):
        return self._position

    @property
    def duration(self):
        return self._duration

    def add_position_observer(self, interval, callback):
        token = next(self._tokens)
        self.observers[token] = callback
        return token

    def remove_position_observer(self, token):
        self.observers.pop(token, None)

    # Test drivers

    def finish_loading(self, duration):
        self._duration = duration
        self.listener.on_item_ready(duration)

    def fail(self, message="decode error"):
        self.listener.on_item_failed(message)

    def end(self):
        self.listener.on_item_ended()

    def fire_position(self, position):
        self._position = position
        for callback in list(self.observers.values()):
            callback(position)


class ManualScheduler:
    """Collects deferred actions until the test runs them."""

    def __init__(self):
        self.calls = []

    def __call__(self, delay, fn):
        self.calls.append((delay, fn))

    def run_all(self):
        pending, self.calls = self.calls, []
        for _, fn in pending:
            fn()
        return len(pending)


class RecordingObserver(PlaybackObserver):
    def __init__(self):
        self.states = []
        self.tracks = []
        self.positions = []
        self.durations = []
        self.errors = []

    def on_state_changed(self, state):
        self.states.append(state)

    def on_position_changed(self, position):
        self.positions.append(position)

    def on_duration_changed(self, duration):
        self.durations.append(duration)

    def on_track_changed(self, track):
        self.tracks.append(track)

    def on_playback_error(self, track, message):
        self.errors.append((track, message))


def make_track(index, duration=180.0):
    return Track(
        id=f"audio-{index}",
        title=f"Track {index}",
        artist="Artist",
        duration=duration,
        audio_url=f"https://cdn.example.com/audio-{index}.mp3",
    )


def make_response(status, payload=None, text=None):
    """Build a real requests.Response carrying ``payload`` as JSON."""
    response = requests.Response()
    response.status_code = status
    if payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode("utf-8")
    response.url = "http://test.local"
    return response


def user_payload(user_id="user-1"):
    return {
        "id": user_id,
        "appleUserId": "apple-1",
        "preferences": {
            "language": "zh-Hans",
            "playbackMode": "sequence",
            "autoCache": False,
            "backgroundPlayback": True,
            "lockScreenControl": True,
            "audioQuality": "high",
            "cacheStorageLimit": 1024,
        },
        "favorites": [{"audioId": "a1", "addedAt": "2024-01-01T00:00:00Z"}],
        "cachedAudios": [],
        "totalPlayTime": 3600,
        "totalSessions": 12,
        "isPremium": False,
    }


def audio_payload(audio_id="a1"):
    return {
        "id": audio_id,
        "title": "Rain on Leaves",
        "artist": "QingYu",
        "duration": 240,
        "scenes": "sleep",
        "audioUrls": {"standard": f"https://cdn/{audio_id}.mp3", "high": f"https://cdn/{audio_id}-hq.mp3"},
        "instruments": ["piano"],
        "natureSounds": ["rain"],
        "createdAt": "2024-01-01T00:00:00Z",
    }


@pytest.fixture
def tracks():
    return [make_track(i) for i in range(4)]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "settings.json", key=Fernet.generate_key())

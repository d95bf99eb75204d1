import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from conftest import FakeBackend, ManualScheduler, make_track
from client.api import APIClient
from client.config import ClientConfig, DeviceInfo
from client.errors import APIError, NetworkError
from player.audio_session import AudioSession
from player.session import PlaybackSessionManager
from player.stats import PlayStatsRecorder
from shared.models import PlaybackState


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def run_inline(fn, *args, callback=None, errback=None, **kwargs):
    """Stand-in for APIClient.submit that runs on the calling thread."""
    try:
        result = fn(*args, **kwargs)
    except APIError as e:
        if errback:
            errback(e)
        return
    if callback:
        callback(result)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def api():
    api = MagicMock()
    api.submit.side_effect = run_inline
    return api


def test_reports_playing_time_on_track_change(api, clock):
    recorder = PlayStatsRecorder(api, clock=clock)
    first, second = make_track(1, duration=300.0), make_track(2)

    recorder.on_track_changed(first)
    recorder.on_state_changed(PlaybackState.PLAYING)
    clock.now += 40
    recorder.on_state_changed(PlaybackState.PAUSED)
    clock.now += 500  # paused time is not counted
    recorder.on_state_changed(PlaybackState.PLAYING)
    clock.now += 20
    recorder.on_position_changed(60.0)
    recorder.on_state_changed(PlaybackState.LOADING)
    recorder.on_track_changed(second)

    api.record_play_stats.assert_called_once_with("audio-1", 60, completed=False)


def test_reports_completed_when_near_end(api, clock):
    recorder = PlayStatsRecorder(api, clock=clock)
    recorder.on_track_changed(make_track(1, duration=30.0))
    recorder.on_state_changed(PlaybackState.PLAYING)
    clock.now += 30
    recorder.on_position_changed(29.95)
    recorder.on_state_changed(PlaybackState.LOADING)
    recorder.on_track_changed(make_track(1, duration=30.0))

    api.record_play_stats.assert_called_once_with("audio-1", 30, completed=True)


def test_queue_completion_flushes(api, clock):
    recorder = PlayStatsRecorder(api, clock=clock)
    recorder.on_track_changed(make_track(1))
    recorder.on_state_changed(PlaybackState.PLAYING)
    clock.now += 12
    recorder.on_state_changed(PlaybackState.COMPLETED)

    api.record_play_stats.assert_called_once_with("audio-1", 12, completed=True)


def test_short_plays_are_not_reported(api, clock):
    recorder = PlayStatsRecorder(api, clock=clock)
    recorder.on_track_changed(make_track(1))
    recorder.on_state_changed(PlaybackState.PLAYING)
    clock.now += 0.5
    recorder.on_track_changed(None)

    api.record_play_stats.assert_not_called()


def test_api_failure_is_logged_not_raised(api, clock):
    api.record_play_stats.side_effect = NetworkError("offline")
    recorder = PlayStatsRecorder(api, clock=clock)
    recorder.on_track_changed(make_track(1))
    recorder.on_state_changed(PlaybackState.PLAYING)
    clock.now += 10

    recorder.flush()
    assert recorder.listened_seconds == 0.0


def test_listened_seconds_includes_running_interval(api, clock):
    recorder = PlayStatsRecorder(api, clock=clock)
    recorder.on_track_changed(make_track(1))
    recorder.on_state_changed(PlaybackState.PLAYING)
    clock.now += 7
    assert recorder.listened_seconds == 7.0


def test_reports_are_sent_off_the_session_lock(store, clock):
    http = MagicMock(spec=requests.Session)
    http.headers = {}
    api = APIClient(
        ClientConfig(
            base_url="http://test.local/",
            store=store,
            device=DeviceInfo(device_id="dev-1", model="x86_64", os_version="Linux 6.1"),
        ),
        session=http,
    )
    started, release = threading.Event(), threading.Event()

    def slow_report(*args, **kwargs):
        started.set()
        release.wait(5)

    api.record_play_stats = slow_report

    session = PlaybackSessionManager(FakeBackend(auto_ready=30.0), audio_session=AudioSession(),
                                     scheduler=ManualScheduler())
    session.add_observer(PlayStatsRecorder(api, clock=clock))
    session.start()
    session.set_queue([make_track(1), make_track(2)], 0)
    session.play()
    clock.now += 20

    try:
        begin = time.monotonic()
        session.skip_to_next()
        session.pause()
        elapsed = time.monotonic() - begin
        assert started.wait(1)
    finally:
        release.set()
        api.close()

    assert elapsed < 1.0
    assert session.state is PlaybackState.PAUSED

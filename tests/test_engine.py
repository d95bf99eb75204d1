import importlib
import sys
from unittest.mock import MagicMock, patch

import pytest

from conftest import ManualScheduler, make_track
from player.audio_session import AudioSession
from player.backend import BackendListener
from player.session import PlaybackSessionManager
from shared.models import PlaybackState


@pytest.fixture
def engine_module():
    """Import player.engine against a mocked python-mpv."""
    mpv_module = MagicMock()
    with patch.dict(sys.modules, {"mpv": mpv_module}):
        sys.modules.pop("player.engine", None)
        module = importlib.import_module("player.engine")
        module.mpv_mock = mpv_module
        yield module
    sys.modules.pop("player.engine", None)


@pytest.fixture
def player():
    player = MagicMock()
    player.time_pos = None
    player.duration = None
    return player


@pytest.fixture
def listener():
    return MagicMock(spec=BackendListener)


@pytest.fixture
def backend(engine_module, player, listener):
    backend = engine_module.MpvBackend(player=player)
    backend.set_listener(listener)
    return backend


def handler(player, name):
    for call in player.observe_property.call_args_list:
        if call.args[0] == name:
            return call.args[1]
    raise AssertionError(f"{name} not observed")


def test_default_player_is_audio_only(engine_module):
    engine_module.MpvBackend()
    kwargs = engine_module.mpv_mock.MPV.call_args.kwargs
    assert kwargs["vo"] == "null"
    assert kwargs["ytdl"] is False


def test_load_opens_paused(backend, player):
    backend.load("https://cdn/a1.mp3")
    player.play.assert_called_once_with("https://cdn/a1.mp3")
    assert player.pause is True


def test_first_duration_reports_ready(backend, player, listener):
    backend.load("https://cdn/a1.mp3")
    handler(player, "duration")("duration", 180.0)
    listener.on_item_ready.assert_called_once_with(180.0)

    handler(player, "duration")("duration", 181.0)
    listener.on_duration_changed.assert_called_once_with(181.0)


def test_idle_before_ready_reports_failure(backend, player, listener):
    backend.load("https://cdn/missing.mp3")
    handler(player, "idle-active")("idle-active", True)
    listener.on_item_failed.assert_called_once()


def test_idle_after_ready_reports_end(backend, player, listener):
    backend.load("https://cdn/a1.mp3")
    handler(player, "duration")("duration", 180.0)
    handler(player, "time-pos")("time-pos", 179.85)
    handler(player, "idle-active")("idle-active", True)

    listener.on_item_ended.assert_called_once()
    listener.on_item_failed.assert_not_called()


def test_eof_then_idle_reports_end_once(backend, player, listener):
    backend.load("https://cdn/a1.mp3")
    handler(player, "duration")("duration", 180.0)
    handler(player, "eof-reached")("eof-reached", True)
    handler(player, "idle-active")("idle-active", True)

    listener.on_item_ended.assert_called_once()


def test_idle_after_unload_is_silent(backend, player, listener):
    backend.load("https://cdn/a1.mp3")
    handler(player, "duration")("duration", 180.0)
    backend.unload()
    handler(player, "idle-active")("idle-active", True)

    listener.on_item_ended.assert_not_called()
    listener.on_item_failed.assert_not_called()


def test_eof_reports_end(backend, player, listener):
    backend.load("https://cdn/a1.mp3")
    handler(player, "duration")("duration", 180.0)
    handler(player, "eof-reached")("eof-reached", True)
    listener.on_item_ended.assert_called_once()


def test_play_pause_toggle_mpv_pause(backend, player):
    backend.play()
    assert player.pause is False
    backend.pause()
    assert player.pause is True


def test_seek_requires_loaded_item(backend, player):
    backend.seek(30.0)
    player.seek.assert_not_called()

    backend.load("https://cdn/a1.mp3")
    handler(player, "duration")("duration", 180.0)
    backend.seek(30.0)
    player.seek.assert_called_once_with(30.0, reference='absolute')


def test_position_observers_are_throttled(engine_module, backend, player):
    positions = []
    token = backend.add_position_observer(0.1, positions.append)
    time_update = handler(player, "time-pos")

    with patch.object(engine_module.time, "monotonic", side_effect=[10.0, 10.05, 10.2, 10.4]):
        time_update("time-pos", 1.0)
        time_update("time-pos", 1.05)
        time_update("time-pos", 1.2)
        backend.remove_position_observer(token)
        time_update("time-pos", 1.4)

    assert positions == [1.0, 1.2]


def test_position_and_duration_default_to_zero(backend, player):
    assert backend.position == 0.0
    assert backend.duration == 0.0
    player.time_pos = 12.5
    assert backend.position == 12.5


def test_close_terminates_player(backend, player):
    backend.close()
    player.terminate.assert_called_once()


def test_session_advances_when_mpv_goes_idle(engine_module, player):
    backend = engine_module.MpvBackend(player=player)
    scheduler = ManualScheduler()
    session = PlaybackSessionManager(backend, audio_session=AudioSession(), scheduler=scheduler)
    session.start()
    session.set_queue([make_track(1), make_track(2)], 0)
    handler(player, "duration")("duration", 180.0)
    session.play()
    assert session.state is PlaybackState.PLAYING

    handler(player, "time-pos")("time-pos", 179.85)
    handler(player, "idle-active")("idle-active", True)
    scheduler.run_all()

    assert session.current_index == 1
    assert session.state is PlaybackState.LOADING

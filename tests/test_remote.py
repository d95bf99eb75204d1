from player.audio_session import AudioSession, AudioSessionError, Interruption, InterruptionType
from player.remote import NowPlayingInfo, RemoteCommand, RemoteCommandCenter


def _info(rate=1.0):
    return NowPlayingInfo(track_id="a1", title="Rain", artist="QingYu", duration=60.0, elapsed=5.0, rate=rate)


def test_dispatch_calls_registered_handler():
    remote = RemoteCommandCenter()
    seen = []
    remote.register(RemoteCommand.CHANGE_POSITION, seen.append)

    assert remote.dispatch(RemoteCommand.CHANGE_POSITION, 12.5)
    assert seen == [12.5]


def test_dispatch_without_handler_returns_false():
    assert not RemoteCommandCenter().dispatch(RemoteCommand.PLAY)


def test_failing_handler_returns_false():
    remote = RemoteCommandCenter()

    def broken():
        raise RuntimeError("boom")

    remote.register(RemoteCommand.NEXT, broken)
    assert not remote.dispatch(RemoteCommand.NEXT)


def test_unregister():
    remote = RemoteCommandCenter()
    remote.register(RemoteCommand.PLAY, lambda: None)
    remote.unregister(RemoteCommand.PLAY)
    assert not remote.has_handler(RemoteCommand.PLAY)


def test_now_playing_notifies_callbacks():
    remote = RemoteCommandCenter()
    updates = []
    remote.add_change_callback(updates.append)

    remote.set_now_playing(_info())
    remote.clear_now_playing()
    remote.clear_now_playing()

    assert updates == [_info(), None]
    assert _info().is_playing
    assert not _info(rate=0.0).is_playing


def test_audio_session_activation_and_refusal():
    calls = []

    def activator(active):
        calls.append(active)

    session = AudioSession(activator=activator)
    session.activate()
    session.activate()
    session.deactivate()
    assert calls == [True, False]

    def refuse(active):
        raise AudioSessionError("busy")

    refused = AudioSession(activator=refuse)
    try:
        refused.activate()
    except AudioSessionError:
        pass
    assert not refused.is_active


def test_interruption_began_deactivates_session():
    session = AudioSession()
    received = []
    session.add_interruption_handler(received.append)
    session.activate()

    began = Interruption(InterruptionType.BEGAN)
    session.post_interruption(began)

    assert received == [began]
    assert not session.is_active

    session.remove_interruption_handler(received.append)
    session.post_interruption(Interruption(InterruptionType.ENDED, should_resume=True))
    assert len(received) == 1

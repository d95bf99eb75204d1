import pytest

from client.models import (
    AuthSession,
    CatalogAudio,
    Envelope,
    Pagination,
    Scene,
    User,
    UserPreferences,
    scenes_from_dict,
)
from shared.models import PlaybackMode, Track
from conftest import audio_payload, user_payload


def test_track_from_dict_ignores_unknown_keys():
    track = Track.from_dict({
        "id": "a1",
        "title": "Rain",
        "artist": "QingYu",
        "duration": 60.0,
        "audio_url": "https://cdn/a1.mp3",
        "scene_tags": ["sleep"],
        "bitrate": 320,
    })
    assert track.scene_tags == ("sleep",)
    assert Track.from_dict(track.to_dict()) == track


def test_playback_url_prefers_local_copy():
    track = Track("a1", "Rain", "QingYu", 60.0, "https://cdn/a1.mp3")
    assert track.playback_url == "https://cdn/a1.mp3"

    offline = Track("a1", "Rain", "QingYu", 60.0, "https://cdn/a1.mp3", is_offline=True, local_path="/c/a1.mp3")
    assert offline.playback_url == "/c/a1.mp3"


@pytest.mark.parametrize("value, mode", [
    ("singleLoop", PlaybackMode.SINGLE_LOOP),
    ("sequence", PlaybackMode.SEQUENTIAL),
    ("random", PlaybackMode.SHUFFLE),
    ("bogus", PlaybackMode.SINGLE_LOOP),
    (None, PlaybackMode.SINGLE_LOOP),
])
def test_playback_mode_from_preference(value, mode):
    assert PlaybackMode.from_preference(value) is mode


def test_envelope_requires_boolean_success():
    with pytest.raises(ValueError):
        Envelope.from_dict({"success": "yes"})
    envelope = Envelope.from_dict({"success": True, "data": {"x": 1}})
    assert envelope.map(lambda d: d["x"]).data == 1


def test_envelope_map_skips_missing_data():
    assert Envelope(success=True).map(lambda d: d["x"]).data is None


def test_user_from_dict():
    user = User.from_dict(user_payload())
    assert user.preferences.to_playback_mode() is PlaybackMode.SEQUENTIAL
    assert user.favorites[0].audio_id == "a1"
    assert user.total_sessions == 12


def test_auth_session_requires_token():
    with pytest.raises(ValueError):
        AuthSession.from_dict({"token": "", "user": user_payload()})


def test_catalog_audio_to_track():
    audio = CatalogAudio.from_dict(audio_payload())

    track = audio.to_track(quality="high")
    assert track.audio_url == "https://cdn/a1-hq.mp3"
    assert track.duration == 240.0
    assert track.scene_tags == ("sleep",)
    assert not track.is_offline

    cached = audio.to_track(local_path="/cache/a1.mp3")
    assert cached.is_offline
    assert cached.playback_url == "/cache/a1.mp3"


def test_catalog_audio_rejects_bad_lists():
    payload = audio_payload()
    payload["instruments"] = "piano"
    with pytest.raises(TypeError):
        CatalogAudio.from_dict(payload)


def test_pagination_has_next():
    assert Pagination.from_dict({"currentPage": 1, "total": 40, "totalPages": 2, "limit": 20}).has_next
    assert not Pagination(current_page=2, total=40, total_pages=2, limit=20).has_next


def test_scene_display_name_falls_back():
    scene = Scene(id="sleep", name="Sleep", count=3, translations={"zh-Hans": "睡眠"})
    assert scene.display_name("zh-Hans") == "睡眠"
    assert scene.display_name("fr") == "Sleep"


def test_scenes_from_dict():
    scenes = scenes_from_dict({"scenes": [{"id": "focus", "name": "Focus", "count": 2}]})
    assert scenes[0].id == "focus"
    assert scenes[0].translations == {}


def test_preferences_explicit_language():
    assert UserPreferences(language="en").to_language() == "en"

"""
MPRIS integration (desktop media keys and sound-menu controls).
Requires the optional ``mpris_server`` package.
"""

import logging
import threading
from typing import Optional

from mpris_server.adapters import MprisAdapter
from mpris_server.events import EventAdapter

from shared.models import PlaybackMode, PlaybackState
from .remote import NowPlayingInfo, RemoteCommand, RemoteCommandCenter

logger = logging.getLogger(__name__)

NO_TRACK = "/org/mpris/MediaPlayer2/TrackList/NoTrack"

_LOOP_STATUS = {
    PlaybackMode.SINGLE_LOOP: "Track",
    PlaybackMode.SEQUENTIAL: "None",
    PlaybackMode.SHUFFLE: "Playlist",
}


class SessionMprisAdapter(MprisAdapter):
    """
    MPRIS interface for the playback session.
    Commands go through the remote command center; metadata comes from now-playing.
    """

    def __init__(self, remote: RemoteCommandCenter, session):
        super().__init__()
        self.remote = remote
        self.session = session

    def get_current_track_info(self):
        """Return generic track info for DBus."""
        info = self.remote.now_playing
        if info is None:
            return {"mpris:trackid": NO_TRACK}

        metadata = {
            # mpris:trackid must be unique path
            "mpris:trackid": f"/org/mpris/MediaPlayer2/TrackList/{_object_path_safe(info.track_id)}",
            "mpris:length": int(info.duration * 1_000_000),  # Microseconds
            "xesam:title": info.title,
            "xesam:artist": [info.artist] if info.artist else ["Unknown"],
        }
        if info.artwork_url:
            metadata["mpris:artUrl"] = info.artwork_url
        return metadata

    def metadata(self):
        return self.get_current_track_info()

    def can_control(self):
        return True

    def can_go_next(self):
        return True

    def can_go_previous(self):
        return True

    def can_pause(self):
        return True

    def can_play(self):
        return True

    def can_seek(self):
        return True

    # --- Actions triggered by system (DBus) ---
    def play(self):
        self.remote.dispatch(RemoteCommand.PLAY)

    def pause(self):
        self.remote.dispatch(RemoteCommand.PAUSE)

    def playpause(self):
        self.remote.dispatch(RemoteCommand.TOGGLE)

    def stop(self):
        self.session.stop()

    def next(self):
        self.remote.dispatch(RemoteCommand.NEXT)

    def previous(self):
        self.remote.dispatch(RemoteCommand.PREVIOUS)

    def seek(self, offset):
        # Offset in microseconds, relative
        self.remote.dispatch(RemoteCommand.CHANGE_POSITION, self.get_current_position() / 1_000_000 + offset / 1_000_000)

    def set_position(self, track_id, position):
        self.remote.dispatch(RemoteCommand.CHANGE_POSITION, position / 1_000_000)

    def get_current_position(self):
        return int(self.session.current_time * 1_000_000)

    def get_playback_status(self):
        state = self.session.state
        if state is PlaybackState.PLAYING:
            return "Playing"
        if state in (PlaybackState.PAUSED, PlaybackState.LOADING):
            return "Paused"
        return "Stopped"

    def get_loop_status(self):
        return _LOOP_STATUS[self.session.playback_mode]

    def get_shuffle(self):
        return self.session.playback_mode is PlaybackMode.SHUFFLE

    def set_shuffle(self, value):
        self.session.set_playback_mode(PlaybackMode.SHUFFLE if value else PlaybackMode.SEQUENTIAL)

    def get_rate(self):
        return 1.0


def _object_path_safe(value: str) -> str:
    """D-Bus object path elements only allow [A-Za-z0-9_]."""
    return "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in value)


class MprisBridge:
    """Publishes the session on the session bus and relays now-playing changes."""

    def __init__(self, remote: RemoteCommandCenter, session, name: str = "QingYu"):
        self.remote = remote
        self.session = session
        self.name = name
        self.adapter = SessionMprisAdapter(remote, session)
        self.server = None
        self.events: Optional[EventAdapter] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        from mpris_server.server import Server

        self.server = Server(self.name, adapter=self.adapter)
        self.events = EventAdapter(root=self.server.root, player=self.server.player)
        self.server.publish()
        self.remote.add_change_callback(self._on_now_playing)

        self._thread = threading.Thread(target=self.server.loop, name="mpris", daemon=True)
        self._thread.start()
        logger.info("MPRIS server published as %s", self.name)

    def stop(self) -> None:
        self.remote.remove_change_callback(self._on_now_playing)
        if self.server is not None:
            try:
                self.server.unpublish()
            except Exception as e:
                logger.warning("Error unpublishing MPRIS server: %s", e)
            self.server = None
        self.events = None

    def _on_now_playing(self, info: Optional[NowPlayingInfo]) -> None:
        if self.events is None:
            return
        self.events.on_title()
        self.events.on_playpause()

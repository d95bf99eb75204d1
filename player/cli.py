import functools
import logging
import time

import click
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from client.api import APIClient
from client.config import ClientConfig
from client.errors import APIError
from shared.models import PlaybackMode, PlaybackState
from .cache import CacheManager

console = Console()
logger = logging.getLogger(__name__)


def _format_time(seconds: float) -> str:
    return f"{int(seconds // 60)}:{int(seconds % 60):02d}"


def _format_size(num_bytes: int) -> str:
    if num_bytes > 1024**3:
        return f"{num_bytes / 1024**3:.2f} GB"
    return f"{num_bytes / 1024**2:.2f} MB"


def _api(ctx: click.Context) -> APIClient:
    obj = ctx.ensure_object(dict)
    if "api" not in obj:
        obj["api"] = APIClient(ClientConfig.from_env())
    return obj["api"]


def _cache(ctx: click.Context) -> CacheManager:
    obj = ctx.ensure_object(dict)
    if "cache" not in obj:
        obj["cache"] = CacheManager()
    return obj["cache"]


def handle_api_errors(f):
    """Print APIError failures and exit non-zero."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except APIError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
    return wrapper


def _audio_table(title, audios) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold white")
    table.add_column("Artist", style="green")
    table.add_column("Scenes", style="yellow")
    table.add_column("Duration", style="magenta")

    for a in audios:
        table.add_row(a.id, a.title, a.artist, a.scenes, _format_time(a.duration))
    return table


@click.group()
@click.option('-v', '--verbose', is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx, verbose):
    """QingYu ambient music player"""
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


@cli.command()
@click.argument('apple_user_id')
@click.pass_context
@handle_api_errors
def login(ctx, apple_user_id):
    """Sign in with an Apple user id."""
    api = _api(ctx)
    auth = api.authenticate(apple_user_id, device_info=api.config.device.to_dict())
    console.print(f"[green]✓ Signed in as {auth.user.id}[/green]")


@cli.command()
@click.pass_context
@handle_api_errors
def profile(ctx):
    """Show the signed-in user."""
    user = _api(ctx).get_user_profile()
    prefs = user.preferences
    console.print(Panel.fit(
        f"[bold]{user.id}[/bold]\n\n"
        f"Favourites: [green]{len(user.favorites)}[/green]\n"
        f"Play time: {_format_time(user.total_play_time)} over {user.total_sessions} sessions\n"
        f"Playback mode: {prefs.to_playback_mode().value}\n"
        f"Language: {prefs.language}  Quality: {prefs.audio_quality}",
        title=" Profile "
    ))


@cli.command()
@click.pass_context
def logout(ctx):
    """Sign out and forget the stored token."""
    try:
        _api(ctx).logout()
    except APIError as e:
        console.print(f"[yellow]Server logout failed ({e}); local session cleared.[/yellow]")
        return
    console.print("[green]✓ Signed out[/green]")


@cli.command()
@click.pass_context
@handle_api_errors
def scenes(ctx):
    """List listening scenes."""
    api = _api(ctx)
    language = api.config.language
    table = Table(title="Scenes")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold white")
    table.add_column("Tracks", style="magenta")
    for scene in api.get_scenes():
        table.add_row(scene.id, scene.display_name(language), str(scene.count))
    console.print(table)


@cli.command(name='list')
@click.option('--scene', help="Only tracks for this scene.")
@click.option('--page', default=1, show_default=True)
@click.pass_context
@handle_api_errors
def list_audio(ctx, scene, page):
    """List catalog tracks."""
    result = _api(ctx).list_audio(page=page, scene=scene)
    if not result.audios:
        console.print("[yellow]No tracks found.[/yellow]")
        return
    p = result.pagination
    console.print(_audio_table(f"Catalog (page {p.current_page}/{p.total_pages}, {p.total} tracks)", result.audios))


@cli.command()
@click.argument('query')
@click.pass_context
@handle_api_errors
def search(ctx, query):
    """Search the catalog."""
    result = _api(ctx).search_audio(query)
    if not result.audios:
        console.print("[yellow]No matching tracks found.[/yellow]")
        return
    console.print(_audio_table(f"Results for '{result.query}'", result.audios))


@cli.command()
@click.pass_context
@handle_api_errors
def favorites(ctx):
    """List favourite tracks."""
    result = _api(ctx).get_favorites()
    if not result.favorites:
        console.print("[yellow]No favourites yet.[/yellow]")
        return
    console.print(_audio_table(f"Favourites ({result.pagination.total})", result.favorites))


@cli.command()
@click.argument('audio_id')
@click.option('--remove', is_flag=True, help="Remove instead of add.")
@click.pass_context
@handle_api_errors
def favorite(ctx, audio_id, remove):
    """Add (or remove) a favourite."""
    api = _api(ctx)
    if remove:
        api.remove_favorite(audio_id)
        console.print(f"[green]✓ Removed {audio_id} from favourites[/green]")
    else:
        api.add_favorite(audio_id)
        console.print(f"[green]✓ Added {audio_id} to favourites[/green]")


@cli.command()
@click.argument('audio_id')
@click.pass_context
@handle_api_errors
def download(ctx, audio_id):
    """Download a track for offline use."""
    api = _api(ctx)
    cache = _cache(ctx)
    if cache.get_cached_path(audio_id):
        console.print(f"[green]✓ {audio_id} is already cached.[/green]")
        return

    info = api.get_download_url(audio_id)
    with console.status(f"Downloading {audio_id}..."):
        path = cache.download(audio_id, info.download_url)
    console.print(f"[green]✓ Downloaded to {path}[/green]")


@cli.command()
@click.pass_context
def cache_status(ctx):
    """Show cache usage stats."""
    cache = _cache(ctx)
    limit_str = f"{cache.max_size_bytes / 1024**3:.0f} GB"
    console.print(Panel.fit(
        f"[bold]Cache Status[/bold]\n\n"
        f"Usage: [green]{_format_size(cache.get_current_usage())}[/green] / {limit_str}\n"
        f"Tracks: {cache.count()}\n"
        f"Location: {cache.cache_dir}",
        title=" Offline Storage "
    ))


def _now_playing_panel(session) -> Panel:
    track = session.current_track
    curr = session.current_time
    total = session.duration or 1
    percent = min(100, (curr / total) * 100)

    status = Text()
    status.append(f"{track.title}\n", style="bold green")
    status.append(f"{track.artist}\n\n", style="cyan")
    status.append(f"{_format_time(curr)} ", style="cyan")
    status.append("━" * int(percent / 2), style="blue")
    status.append(" " * (50 - int(percent / 2)), style="grey50")
    status.append(f" {_format_time(total)}", style="cyan")

    title = f"{session.state.value.title()} · {session.current_index + 1}/{len(session.queue)}"
    return Panel(status, title=title, subtitle=session.playback_mode.value)


@cli.command()
@click.option('--scene', help="Play tracks from this scene.")
@click.option('--mode', type=click.Choice([m.value for m in PlaybackMode]), default=None,
              help="Playback mode (defaults to the user's preference).")
@click.option('--mpris', is_flag=True, help="Expose media controls over MPRIS.")
@click.pass_context
@handle_api_errors
def play(ctx, scene, mode, mpris):
    """Play catalog tracks until interrupted."""
    try:
        from .engine import MpvBackend
    except OSError:
        console.print(Panel.fit(
            "[red bold]Missing System Dependency: libmpv[/red bold]\n\n"
            "The player requires the [cyan]libmpv[/cyan] library to work.\n\n"
            "Please install it:\n"
            "• Ubuntu/Debian: [green]sudo apt install libmpv2[/green]\n"
            "• Fedora: [green]sudo dnf install mpv-libs[/green]\n"
            "• Arch: [green]sudo pacman -S mpv[/green]",
            border_style="red"
        ))
        raise SystemExit(1)

    from .remote import RemoteCommandCenter
    from .session import PlaybackSessionManager
    from .stats import PlayStatsRecorder

    api = _api(ctx)
    cache = _cache(ctx)

    audios = api.get_audio_by_scene(scene).audios if scene else api.list_audio().audios
    if not audios:
        console.print("[yellow]No tracks to play.[/yellow]")
        return

    quality = "standard"
    playback_mode = PlaybackMode(mode) if mode else PlaybackMode.SINGLE_LOOP
    if api.is_authenticated and not mode:
        try:
            prefs = api.get_user_profile().preferences
            playback_mode = prefs.to_playback_mode()
            quality = prefs.audio_quality
        except APIError as e:
            logger.warning("Could not load preferences: %s", e)

    tracks = [cache.resolve(a.to_track(quality=quality)) for a in audios]

    try:
        backend = MpvBackend()
    except Exception as e:
        console.print(f"[red]Error initializing player: {e}[/red]")
        raise SystemExit(1)

    remote = RemoteCommandCenter()
    session = PlaybackSessionManager(backend, remote=remote)
    session.set_playback_mode(playback_mode)

    recorder = None
    if api.is_authenticated:
        recorder = PlayStatsRecorder(api)
        session.add_observer(recorder)

    bridge = None
    if mpris:
        try:
            from .mpris import MprisBridge
            bridge = MprisBridge(remote, session)
            bridge.start()
        except ImportError:
            console.print("[yellow]MPRIS disabled (install qingyu[mpris] for media key support)[/yellow]")
            bridge = None

    try:
        with session:
            session.set_queue(tracks, 0)
            session.play()
            with Live(_now_playing_panel(session), refresh_per_second=4, console=console) as live:
                while session.state not in (PlaybackState.COMPLETED, PlaybackState.IDLE):
                    live.update(_now_playing_panel(session))
                    time.sleep(0.25)
            if session.state is PlaybackState.IDLE:
                console.print("[red]Playback stopped after an error.[/red]")
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")
    finally:
        if recorder is not None:
            recorder.flush()
        if bridge is not None:
            bridge.stop()
        backend.close()


if __name__ == '__main__':
    cli()

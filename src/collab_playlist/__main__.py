import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from typing import List, Optional

from . import auth, config, VERSION
from .logging_config import setup_logging
from .loader import LoadState, PlaylistLoader
from .models import PlaylistInfo
from .spotify import SpotifyError, parse_spotify_url

logger = logging.getLogger(__name__)


def format_duration(duration: timedelta) -> str:
    total_seconds = int(duration.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def render_text(info: PlaylistInfo) -> List[str]:
    """Plain-text rendering of a PlaylistInfo, one block per contributor."""
    lines = [f"{info.name} ({format_duration(info.total_duration)})"]
    for user, tracks in info.runs():
        lines.append(
            f"{user.color} {user.name}: {user.track_count} track(s), "
            f"{format_duration(user.total_duration)} ({user.relative_size:.1%})"
        )
        for track in tracks:
            marker = " [stale]" if track.is_stale else ""
            lines.append(
                f"    {track.name} {format_duration(track.duration)} "
                f"({track.relative_size:.1%}){marker}"
            )
    return lines


async def _login(store: auth.AuthStore) -> int:
    url = await auth.begin_login(store)
    print("Open this URL, then run `callback` with the URL you are redirected to:")
    print(url)
    return 0


async def _callback(store: auth.AuthStore, code_or_url: str) -> int:
    try:
        await auth.complete_login(store, code_or_url)
    except auth.AuthError as e:
        logger.error("Login failed: %s", e)
        print("Login failed, run `login` again.")
        return 1
    print("Logged in.")
    return 0


async def _with_client(store: auth.AuthStore, playlist: Optional[str]) -> int:
    flow = await store.load()
    try:
        client = auth.client_from_flow(flow)
    except auth.NotAuthenticatedError:
        print("Not logged in, run `login` first.")
        return 1

    try:
        if playlist is None:
            playlists = await client.list_playlists()
            print("Playlists:")
            for summary in playlists:
                kind = "collaborative" if summary.collaborative else "solo"
                print(f"{summary.id} {summary.name}: {kind}")
            return 0

        parsed = parse_spotify_url(playlist)
        if parsed is None or parsed[0] != "playlist":
            print(f"Not a Spotify playlist: {playlist}")
            return 1

        loader = PlaylistLoader(client)
        info = await loader.select(parsed[1])
        if loader.state != LoadState.READY or info is None:
            print(f"No data available: {loader.error}")
            return 1
        print("\n".join(render_text(info)))
        return 0
    except SpotifyError as e:
        logger.error("Spotify request failed: %s", e)
        return 1
    finally:
        refreshed = auth.refreshed_flow(client, flow)
        if refreshed is not None:
            await store.save(refreshed)


async def run(args: argparse.Namespace) -> int:
    store = auth.AuthStore(args.auth_file)
    if args.command == "login":
        return await _login(store)
    if args.command == "callback":
        return await _callback(store, args.code)
    if args.command == "playlists":
        return await _with_client(store, None)
    return await _with_client(store, args.playlist)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collab-playlist",
        description="Who added what to a collaborative Spotify playlist.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--auth-file", default=config.AUTH_STATE_FILE)
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("login", help="start Spotify login")
    callback = sub.add_parser("callback", help="finish login with the redirect URL or code")
    callback.add_argument("code")
    sub.add_parser("playlists", help="list your playlists")
    show = sub.add_parser("show", help="show contributions to a playlist")
    show.add_argument("playlist", help="playlist URL, URI or ID")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    setup_logging(config.LOG_LEVEL)
    args = build_parser().parse_args(argv)
    try:
        sys.exit(asyncio.run(run(args)))
    except SpotifyError as e:
        # SpotifyNotConfiguredError is raised before any request is made
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()

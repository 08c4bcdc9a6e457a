"""Lounge Remote CLI.

Usage:
    lounge-remote pair 123456789012              # Pair with the code shown on the TV
    lounge-remote refresh SCREEN_ID [...]        # Fetch fresh lounge tokens
    lounge-remote available                      # Is the screen online?
    lounge-remote watch                          # Stream events as they arrive
    lounge-remote send pause                     # Send a command
    lounge-remote send volume 35
    lounge-remote send play-video dQw4w9WgXcQ
    lounge-remote thumbnail dQw4w9WgXcQ          # Print a thumbnail URL
    lounge-remote config                         # Show effective settings

Commands that talk to a paired screen read its credentials from
--screen-id/--token or LOUNGE_SCREEN_ID/LOUNGE_TOKEN.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

import click

from .config import LoungeSettings
from .errors import LoungeError
from .models import Screen
from .protocol.commands import (
    AddVideo,
    Command,
    Mute,
    Next,
    Pause,
    Play,
    Previous,
    SeekTo,
    SetAutoplayMode,
    SetPlaylist,
    SetVolume,
    SkipAd,
    Unmute,
)
from .protocol.events import LoungeEvent
from .sdk.client import LoungeClient, create_client
from .sdk.transport import HTTPLoungeTransport, TransportConfig

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

# Actions that take no value
SIMPLE_ACTIONS: dict[str, type[Command]] = {
    "play": Play,
    "pause": Pause,
    "next": Next,
    "previous": Previous,
    "skip-ad": SkipAd,
    "mute": Mute,
    "unmute": Unmute,
}
VALUE_ACTIONS = ("seek", "volume", "autoplay", "play-video", "add-video")


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def format_event(event: LoungeEvent, output_format: str) -> str:
    """Render one event as a JSON line or a table row."""
    data = event.model_dump(mode="json", exclude={"event_id"})
    if output_format == FORMAT_JSON:
        return json.dumps({"kind": event.kind, "id": event.event_id, **data}, default=str)
    summary = " ".join(f"{k}={v}" for k, v in data.items() if v not in (None, "", []))
    event_id = "-" if event.event_id is None else str(event.event_id)
    return f"{event_id:>6} {event.kind:<28} {truncate(summary, 90)}"


def _open_transport(settings: LoungeSettings) -> HTTPLoungeTransport:
    return HTTPLoungeTransport(TransportConfig.from_settings(settings))


def _open_client(settings: LoungeSettings, screen: Screen) -> LoungeClient:
    return create_client(screen, settings=settings)


def _screen_from_options(screen_id: str | None, token: str | None) -> Screen:
    if not screen_id or not token:
        raise click.UsageError(
            "A paired screen is required: pass --screen-id and --token "
            "(or set LOUNGE_SCREEN_ID and LOUNGE_TOKEN)"
        )
    return Screen(screen_id=screen_id, lounge_token=token)


def _run(coro: Any) -> Any:
    """Run a coroutine, turning client errors into a non-zero exit."""
    try:
        return asyncio.run(coro)
    except LoungeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def screen_options(func: Any) -> Any:
    func = click.option(
        "--token", envvar="LOUNGE_TOKEN", help="Lounge token of the paired screen"
    )(func)
    func = click.option(
        "--screen-id", envvar="LOUNGE_SCREEN_ID", help="Screen id of the paired screen"
    )(func)
    return func


def format_option(func: Any) -> Any:
    return click.option(
        "--format",
        "-f",
        "output_format",
        type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
        default=FORMAT_TABLE,
        help="Output format",
    )(func)


@click.group()
@click.option("--verbose", "-v", count=True, help="Log to stderr (-vv for wire detail)")
@click.option("--base-url", default=None, help="Override the Lounge API root")
@click.pass_context
def main(ctx: click.Context, verbose: int, base_url: str | None) -> None:
    """Lounge Remote - control a lounge-enabled TV from the command line."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
    settings = LoungeSettings.from_env()
    if base_url:
        settings.base_url = base_url
    ctx.obj = settings


# =============================================================================
# Pairing
# =============================================================================


def _print_screens(screens: list[Screen], output_format: str) -> None:
    if output_format == FORMAT_JSON:
        click.echo(
            json.dumps([s.model_dump(mode="json", by_alias=True) for s in screens], indent=2)
        )
        return

    click.echo(f"{'Screen ID':<36} {'Name':<20} {'Token':<30}")
    click.echo("-" * 88)
    for s in screens:
        click.echo(
            f"{truncate(s.screen_id, 36):<36} {truncate(s.display_name, 20):<20} "
            f"{truncate(s.lounge_token, 30):<30}"
        )


@main.command()
@click.argument("pairing_code")
@format_option
@click.pass_obj
def pair(settings: LoungeSettings, pairing_code: str, output_format: str) -> None:
    """Pair with a screen using the code shown in the TV's settings.

    Examples:

        lounge-remote pair 123456789012
        lounge-remote pair 123456789012 --format json
    """

    async def run() -> Screen:
        transport = _open_transport(settings)
        try:
            return await LoungeClient.pair(pairing_code, transport=transport)
        finally:
            await transport.aclose()

    screen = _run(run())
    _print_screens([screen], output_format)


@main.command()
@click.argument("screen_ids", nargs=-1, required=True)
@format_option
@click.pass_obj
def refresh(settings: LoungeSettings, screen_ids: tuple[str, ...], output_format: str) -> None:
    """Fetch fresh lounge tokens for one or more screens."""

    async def run() -> list[Screen]:
        transport = _open_transport(settings)
        try:
            return await LoungeClient.refresh_tokens(screen_ids, transport=transport)
        finally:
            await transport.aclose()

    screens = _run(run())
    _print_screens(screens, output_format)


# =============================================================================
# Screen commands
# =============================================================================


@main.command()
@screen_options
@click.option("--refresh/--no-refresh", default=True, help="Refresh the token if rejected")
@click.pass_obj
def available(
    settings: LoungeSettings, screen_id: str | None, token: str | None, refresh: bool
) -> None:
    """Check whether the screen is online. Exits 1 when it is not."""
    screen = _screen_from_options(screen_id, token)

    async def run() -> bool:
        client = _open_client(settings, screen)
        try:
            return await client.is_available(refresh=refresh)
        finally:
            await client.aclose()

    online = _run(run())
    click.echo("online" if online else "offline")
    if not online:
        sys.exit(1)


@main.command()
@screen_options
@format_option
@click.option("--count", "-n", type=int, default=None, help="Stop after this many events")
@click.pass_obj
def watch(
    settings: LoungeSettings,
    screen_id: str | None,
    token: str | None,
    output_format: str,
    count: int | None,
) -> None:
    """Connect and print every event until interrupted.

    Examples:

        lounge-remote watch
        lounge-remote watch --format json -n 20
    """
    screen = _screen_from_options(screen_id, token)

    async def run() -> None:
        client = _open_client(settings, screen)
        seen = 0
        try:
            async with client.events.subscribe() as events:
                await client.connect()
                async for event in events:
                    click.echo(format_event(event, output_format))
                    seen += 1
                    if count is not None and seen >= count:
                        break
        finally:
            await client.aclose()

    try:
        _run(run())
    except KeyboardInterrupt:
        click.echo("\nDisconnected", err=True)


def build_command(action: str, value: str | None) -> Command:
    """Translate a CLI action and its value into a command."""
    if action in SIMPLE_ACTIONS:
        return SIMPLE_ACTIONS[action]()
    if value is None:
        raise click.UsageError(f"'{action}' needs a value")
    try:
        if action == "seek":
            return SeekTo(time=float(value))
        if action == "volume":
            return SetVolume(volume=int(value))
    except ValueError as e:
        raise click.BadParameter(f"{value!r} is not a number", param_hint="VALUE") from e
    if action == "autoplay":
        return SetAutoplayMode(mode=value)
    if action == "play-video":
        return SetPlaylist.for_video(value)
    return AddVideo(video_id=value)


@main.command()
@click.argument("action", type=click.Choice([*SIMPLE_ACTIONS, *VALUE_ACTIONS]))
@click.argument("value", required=False)
@screen_options
@click.pass_obj
def send(
    settings: LoungeSettings,
    action: str,
    value: str | None,
    screen_id: str | None,
    token: str | None,
) -> None:
    """Bind a session, send one command and disconnect.

    Examples:

        lounge-remote send pause
        lounge-remote send seek 90
        lounge-remote send volume 35
        lounge-remote send play-video dQw4w9WgXcQ
    """
    screen = _screen_from_options(screen_id, token)
    command = build_command(action, value)

    async def run() -> None:
        async with _open_client(settings, screen) as client:
            await client.send(command, refresh=True)

    _run(run())
    click.echo(f"Sent {command.name}")


@main.command()
@click.argument("video_id")
@click.option("--index", "-i", type=click.IntRange(0, 3), default=0, help="Thumbnail index")
def thumbnail(video_id: str, index: int) -> None:
    """Print the thumbnail URL of a video."""
    click.echo(LoungeClient.thumbnail_url(video_id, index))


@main.command("config")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def show_config(settings: LoungeSettings, output_json: bool) -> None:
    """Show effective settings (defaults overridden by LOUNGE_* variables)."""
    config = dataclasses.asdict(settings)
    if output_json:
        click.echo(json.dumps(config, indent=2))
        return

    click.echo("Lounge Remote Configuration")
    click.echo("-" * 40)
    for key, val in config.items():
        click.echo(f"{key + ':':<24}{'off' if val is None else val}")


if __name__ == "__main__":
    main()

"""
YouSonos - Entry Point

Run with: python -m yousonos <command>

Commands:
    devices            List speakers found on the network
    select NAME        Remember NAME as the active speaker
    play URL           Play a YouTube URL and follow its position
    pause / resume / stop
    seek SECONDS       Jump to a position in the current track
    volume [PERCENT]   Show or set the speaker volume
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from yousonos import __version__
from yousonos.app import YouSonosApp
from yousonos.config import load_config
from yousonos.core import YouSonosError
from yousonos.core.events import Event, PlaybackStatusEvent

logger = logging.getLogger("yousonos")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="yousonos",
        description="YouSonos - play YouTube audio on a Sonos speaker",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="TOML file overriding the default configuration",
    )

    parser.add_argument(
        "-s",
        "--speaker",
        type=str,
        default=None,
        help="Speaker name to use instead of the remembered one",
    )

    parser.add_argument(
        "--bridge-port",
        type=int,
        default=None,
        help="Bridge server port (default: 9372)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("devices", help="List speakers on the network")

    select = commands.add_parser("select", help="Remember the active speaker")
    select.add_argument("name", help="Speaker name as listed by 'devices'")

    play = commands.add_parser("play", help="Play a YouTube URL")
    play.add_argument("url", help="YouTube video URL")

    commands.add_parser("pause", help="Pause playback")
    commands.add_parser("resume", help="Resume playback")
    commands.add_parser("stop", help="Stop playback")

    seek = commands.add_parser("seek", help="Seek to a position")
    seek.add_argument("seconds", type=int, help="Position in seconds")

    volume = commands.add_parser("volume", help="Show or set the volume")
    volume.add_argument("percent", type=int, nargs="?", default=None, help="New volume (0-100)")

    return parser.parse_args(argv)


async def _use_speaker(app: YouSonosApp, name: str | None) -> None:
    """Select an explicit speaker, or require the remembered one."""
    if name is not None:
        await app.discover()
        await app.select_target(name, remember=False)
    elif app.session.target is None:
        raise YouSonosError("No speaker selected; run 'yousonos select NAME' first")


async def _follow_playback(app: YouSonosApp) -> None:
    """Print the position each tick until the track ends or Ctrl-C."""

    async def on_status(event: Event) -> None:
        if isinstance(event, PlaybackStatusEvent):
            print(f"\r{event.position}", end="", flush=True)

    async def on_ended(event: Event) -> None:
        print()
        app.request_shutdown()

    await app.event_bus.subscribe("playback.status", on_status)
    await app.event_bus.subscribe("track.ended", on_ended)
    await app.run_until_shutdown()


async def run_command(args: argparse.Namespace) -> int:
    """Run one CLI command against a fresh app instance."""
    config = load_config(args.config)
    if args.bridge_port is not None:
        config.bridge.port = args.bridge_port

    app = YouSonosApp(config)
    try:
        if args.command == "devices":
            await app.start(serve_bridge=False, restore_target=False)
            targets = await app.discover()
            if not targets:
                print("No speakers found")
            remembered = app.state_store.active_device
            for target in targets:
                marker = "*" if target.name == remembered else " "
                print(f"{marker} {target.name}  {target.control_base_url}")
            return 0

        if args.command == "select":
            await app.start(serve_bridge=False, restore_target=False)
            await app.discover()
            target = await app.select_target(args.name)
            print(f"Selected {target.name}")
            return 0

        if args.command == "play":
            await app.start(serve_bridge=True, restore_target=args.speaker is None)
            await _use_speaker(app, args.speaker)
            track = await app.play_url(args.url)
            print(f"Playing {track.title} ({track.duration_seconds}s)")
            await _follow_playback(app)
            return 0

        await app.start(serve_bridge=False, restore_target=args.speaker is None)
        await _use_speaker(app, args.speaker)

        if args.command == "pause":
            await app.pause()
        elif args.command == "resume":
            await app.play()
        elif args.command == "stop":
            await app.stop_playback()
        elif args.command == "seek":
            await app.session.seek(args.seconds)
        elif args.command == "volume":
            if args.percent is not None:
                await app.set_volume(args.percent)
            print(f"{await app.get_volume()}%")
        return 0
    finally:
        await app.stop()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except (YouSonosError, ValueError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())

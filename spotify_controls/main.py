#!/usr/bin/env python3
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from spotify_controls.core.log_setup import setup_logging
from spotify_controls.extension import SpotifyControlsExtension
from spotify_controls.indicator.console import ConsoleRenderer
from spotify_controls.mpris.errors import BusUnavailableError
from spotify_controls.shared.config_handler import ConfigHandler


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="spotify-controls",
        description="Show the current Spotify track with playback controls.",
    )
    parser.add_argument(
        "--config", "-c", type=Path, default=None, help="Path to config.toml"
    )
    parser.add_argument(
        "--debug", "-d", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--gtk",
        action="store_true",
        help="Render a GTK4 panel instead of printing to the terminal",
    )
    return parser.parse_args(argv)


async def run_console(extension: SpotifyControlsExtension) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    await extension.enable()
    try:
        await stop.wait()
    finally:
        await extension.disable()


def main(argv=None) -> int:
    args = parse_args(argv)
    logger = setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
    config = ConfigHandler(args.config, logger=logger)
    config.start_watcher()
    try:
        if args.gtk:
            from spotify_controls.indicator.gtk_panel import run_gtk

            extension = SpotifyControlsExtension(config, logger=logger)
            return run_gtk(extension, logger)
        extension = SpotifyControlsExtension(
            config,
            renderer_factory=lambda indicator, position: ConsoleRenderer(indicator),
            logger=logger,
        )
        asyncio.run(run_console(extension))
        return 0
    except BusUnavailableError as e:
        logger.critical(f"Fatal error during initialization: {e}")
        return 1
    finally:
        config.stop_watcher()


if __name__ == "__main__":
    sys.exit(main())

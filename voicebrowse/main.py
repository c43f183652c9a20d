"""Main entry point for the voicebrowse daemon."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

from .config import load_config, validate_credentials
from .logging_setup import setup_logging
from .pipeline_manager import PipelineManager


logger = logging.getLogger(__name__)

__all__ = ["run"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="voicebrowse",
        description="Control a browser with spoken commands.",
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="Path to a TOML config file."
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Stop after this many voice commands (0 = run forever).",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main daemon function.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = parse_args(argv)

    # Load configuration first
    try:
        config = load_config(args.config)
        if args.max_iterations is not None:
            config.daemon.max_iterations = max(0, args.max_iterations)
        validate_credentials(config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(config.daemon.log_level, config.daemon.computed_log_file)
    logger.info("Starting voicebrowse...")

    shutdown_event = asyncio.Event()
    manager = PipelineManager(config, shutdown_event)

    def handle_signal(sig: int) -> None:
        sig_name = signal.Signals(sig).name
        logger.info(f"Received signal {sig_name}, initiating shutdown...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await manager.start()
        logger.info("voicebrowse started successfully, speak a command")

        run_task = asyncio.create_task(manager.run())
        shutdown_task = asyncio.create_task(shutdown_event.wait())
        await asyncio.wait(
            {run_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
        )

        if not run_task.done():
            logger.info("Starting graceful shutdown...")
            run_task.cancel()
        shutdown_task.cancel()

        try:
            iterations = await run_task
            logger.info(f"Handled {iterations} voice command(s)")
        except asyncio.CancelledError:
            logger.info("Voice command loop cancelled")

    except Exception:
        logger.exception("Fatal error in voicebrowse:")
        return 1

    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await manager.stop()
        logger.info("Shutdown complete")

    return 0


def run() -> NoReturn:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as e:
        # Fallback logger in case of early failure
        logging.basicConfig()
        logger.exception(f"voicebrowse failed with unhandled exception: {e}")
        sys.exit(1)

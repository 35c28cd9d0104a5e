"""
Main entry point when running the drive_control module with python -m.
"""

import argparse
import asyncio
import logging
import sys

from .client import main, setup_logging
from .component_modes import parse_component_flags
from .config import WS_URI
from .field import Color
from .routines import ROUTINES

if __name__ == "__main__":
    # Component selection flags first, the rest below
    component_mode, remaining_args = parse_component_flags()

    parser = argparse.ArgumentParser(
        description="Run an autonomous routine on a remote robot or the offline simulator"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    parser.add_argument(
        "--routine", choices=sorted(ROUTINES), default="square", help="Routine to run"
    )
    parser.add_argument(
        "--color", choices=[color.value for color in Color], default=Color.RED.value,
        help="Alliance color (mirrors field landmarks)",
    )
    parser.add_argument(
        "--sim", action="store_true", help="Run offline against the simulator in virtual time"
    )
    parser.add_argument("--uri", default=WS_URI, help="WebSocket URI of the robot bridge")
    args = parser.parse_args(remaining_args)

    setup_logging(args.verbose)

    try:
        asyncio.run(
            main(
                routine_name=args.routine,
                component_mode=component_mode,
                color=Color(args.color),
                offline=args.sim,
                uri=args.uri,
            )
        )
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)

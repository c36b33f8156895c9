#!/usr/bin/env python3
"""
Firechat Command Line Entry Point

Runs the scripted demo session. Configuration comes from the environment
(see firechat.config) and can be overridden on the command line.
"""

import argparse
import asyncio
import dataclasses
import logging
import os
import sys

from .config import DEFAULT_LOG_LEVEL, FirechatOptions
from .demo import run_demo

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a scripted Firechat session")
    parser.add_argument(
        "--messages",
        type=int,
        default=None,
        help="number of most recent messages observed per room",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("FIRECHAT_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        help="logging level (default: %(default)s)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the demo."""
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        options = FirechatOptions.from_env()
        if args.messages is not None:
            options = dataclasses.replace(options, num_max_messages=args.messages)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    try:
        asyncio.run(run_demo(options))
    except KeyboardInterrupt:
        logger.info("Exiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()

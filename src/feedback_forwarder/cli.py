#!/usr/bin/env python3
"""
CLI tool for checking configuration and replaying events.

Usage:
    python -m feedback_forwarder.cli check-config forwarder.yaml
    python -m feedback_forwarder.cli replay forwarder.yaml events.jsonl
    cat events.jsonl | python -m feedback_forwarder.cli replay forwarder.yaml -
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Iterator, TextIO

from .config import ConfigurationError, ForwarderConfig
from .delivery import DeliveryError
from .events import Event
from .forwarder import FeedbackForwarder


logger = logging.getLogger(__name__)


def print_json(data: Any, indent: int = 2) -> None:
    output = json.dumps(data, indent=indent, default=str)
    print(output)


def load_config(path: str) -> ForwarderConfig:
    """Load a YAML or JSON config based on the file extension."""
    if path.endswith(".json"):
        return ForwarderConfig.from_json(path)
    return ForwarderConfig.from_yaml(path)


def read_events(stream: TextIO) -> Iterator[Event]:
    """Yield events from JSON lines, skipping blank lines."""
    for lineno, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping line {lineno}: invalid JSON ({e})")
            continue
        if not isinstance(data, dict):
            logger.warning(f"Skipping line {lineno}: expected a JSON object")
            continue
        yield Event.from_dict(data)


def cmd_check_config(args) -> int:
    """Validate a config file."""
    try:
        config = load_config(args.config)
        config.validate()
    except (ConfigurationError, OSError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    print_json(config.to_dict())
    return 0


async def _replay(config: ForwarderConfig, stream: TextIO, stop_on_error: bool) -> int:
    forwarder = FeedbackForwarder(config)
    await forwarder.setup_plugin()

    exit_code = 0
    accepted = skipped = 0
    try:
        for event in read_events(stream):
            try:
                if await forwarder.on_event(event):
                    accepted += 1
                else:
                    skipped += 1
            except DeliveryError as e:
                exit_code = 1
                if stop_on_error:
                    print(f"Delivery failed: {e}", file=sys.stderr)
                    break
    finally:
        try:
            await forwarder.teardown_plugin()
        except DeliveryError as e:
            print(f"Final flush failed: {e}", file=sys.stderr)
            exit_code = 1

    print_json({"accepted": accepted, "skipped": skipped, **forwarder.stats})
    return exit_code


def cmd_replay(args) -> int:
    """Replay JSON-lines events through the forwarder."""
    try:
        config = load_config(args.config)
        config.validate()
    except (ConfigurationError, OSError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    if args.events == "-":
        return asyncio.run(_replay(config, sys.stdin, args.stop_on_error))

    with open(args.events, "r", encoding="utf-8") as f:
        return asyncio.run(_replay(config, f, args.stop_on_error))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feedback-forwarder",
        description="Forward analytics events as recommendation feedback",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser("check-config", help="Validate a config file")
    check_parser.add_argument("config", help="Path to YAML or JSON config")
    check_parser.set_defaults(func=cmd_check_config)

    replay_parser = subparsers.add_parser("replay", help="Replay events from JSON lines")
    replay_parser.add_argument("config", help="Path to YAML or JSON config")
    replay_parser.add_argument("events", help="JSON-lines file, or - for stdin")
    replay_parser.add_argument(
        "--stop-on-error",
        action="store_true",
        help="Stop at the first failed delivery",
    )
    replay_parser.set_defaults(func=cmd_replay)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

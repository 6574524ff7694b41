"""CLI entrypoint for the mobile native orchestrator.

Each invocation handles one orchestrator request and prints the JSON response,
so a caller can drive a session by feeding tool results back with ``resume``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from pydantic import ValidationError

from mobile_native_orchestrator import __version__
from mobile_native_orchestrator.mobile import build_orchestrator
from mobile_native_orchestrator.orchestrator.config import OrchestratorSettings
from mobile_native_orchestrator.orchestrator.logging import configure_logging

logger = logging.getLogger(__name__)


def _parse_input(value: str | None) -> Any:
    """Decode ``value`` as JSON when possible, otherwise keep it as plain text."""

    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mobile-orchestrator",
        description="Resumable workflow orchestrator for native mobile app projects",
    )
    parser.add_argument(
        "--version", action="version", version=f"mobile-native-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    start = subparsers.add_parser("start", help="Start a new workflow session")
    start.add_argument(
        "--input",
        default=None,
        help="Initial user input: a JSON object of known properties or a free-form request",
    )

    resume = subparsers.add_parser(
        "resume", help="Resume a suspended session with the delegated tool's result"
    )
    resume.add_argument("--session", required=True, help="Session id returned by a prior call")
    resume.add_argument(
        "--input",
        default=None,
        help="Result of the delegated tool, usually a JSON object",
    )

    show = subparsers.add_parser("show-session", help="Print the stored checkpoint of a session")
    show.add_argument("--session", required=True, help="Session id to look up")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = OrchestratorSettings()
    except ValidationError as e:
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level, stream=sys.stderr)

    try:
        orchestrator = build_orchestrator(settings)

        if args.command == "start":
            response = orchestrator.begin_session(_parse_input(args.input), "")
            print(response.model_dump_json(indent=2, exclude_none=True))
            return 0

        if args.command == "resume":
            response = orchestrator.begin_session(_parse_input(args.input), args.session)
            if response.session_id != args.session:
                logger.warning(
                    "Session was not found; a new one was started",
                    extra={"requested_session": args.session, "session_id": response.session_id},
                )
            print(response.model_dump_json(indent=2, exclude_none=True))
            return 0

        if args.command == "show-session":
            checkpoint = orchestrator.describe_session(args.session)
            if checkpoint is None:
                print(f"No checkpoint found for session {args.session}", file=sys.stderr)
                return 3
            print(checkpoint.model_dump_json(indent=2))
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""Interactive session example.

This demonstrates driving the orchestrator directly from Python:

* load settings from `.env`
* start a mobile workflow session with an initial request
* print each delegated capability request and read its JSON result from stdin
* stop when the workflow concludes

Checkpoints are kept in memory, so the session ends with this process.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Sequence

from mobile_native_orchestrator.mobile import build_orchestrator
from mobile_native_orchestrator.orchestrator.config import OrchestratorSettings
from mobile_native_orchestrator.orchestrator.logging import configure_logging
from mobile_native_orchestrator.orchestrator.workflow.checkpoint import InMemoryCheckpointStore


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drive a mobile workflow session interactively.")
    parser.add_argument(
        "--request",
        default="Create an iOS app named Contacts",
        help="Initial free-form request",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = OrchestratorSettings()
    configure_logging(settings.log_level, stream=sys.stderr)

    orchestrator = build_orchestrator(settings, store=InMemoryCheckpointStore())
    response = orchestrator.begin_session(args.request)

    while response.status == "suspended":
        print(response.instructions)
        raw = input("Tool result (JSON): ")
        try:
            result = json.loads(raw)
        except json.JSONDecodeError:
            result = raw
        response = orchestrator.begin_session(result, response.session_id)

    print(response.instructions)
    state = response.state or {}
    print(f"Workflow status: {state.get('workflowStatus')}")
    for message in state.get("workflowFatalErrorMessages") or []:
        print(f"  error: {message}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

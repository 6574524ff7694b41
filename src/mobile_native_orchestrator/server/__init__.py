"""FastAPI server adapter for mobile-native-orchestrator.

This module exposes a REST API over the workflow orchestrator.

Design intent:
- Keep workflow logic in `mobile_native_orchestrator.orchestrator.*` and `.mobile`
- Keep server-specific concerns (routing, CORS, HTTP error mapping) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from mobile_native_orchestrator.server.app import create_app

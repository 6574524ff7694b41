"""Console script shim for ``mobile-orchestrator``.

The CLI is implemented in `mobile_native_orchestrator.orchestrator.main`.
"""

from __future__ import annotations

from mobile_native_orchestrator.orchestrator.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())

"""Mobile Native Orchestrator.

A resumable workflow that walks a user from a project request to a native iOS
or Android app running on a simulator or emulator:
- settings loaded from `.env`
- structured logging
- checkpointed sessions driven through a CLI or HTTP API
"""

__version__ = "0.1.0"

from mobile_native_orchestrator.orchestrator.config import OrchestratorSettings

__all__ = ["__version__", "OrchestratorSettings"]

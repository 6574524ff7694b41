"""Core orchestrator components.

Provides:
- Settings loaded from .env
- Structured logging
- The workflow graph engine with checkpointed sessions
- Command execution, native builds and device deployment
"""

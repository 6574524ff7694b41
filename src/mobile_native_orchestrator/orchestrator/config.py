"""Configuration for the mobile native orchestrator.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

`ANDROID_HOME` and `JAVA_HOME` are only read here as seeds for the Android
setup check. Discovered SDK paths are kept in workflow state and passed to
commands explicitly; the process environment is never modified.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrchestratorSettings(BaseSettings):
    """Settings for the orchestrator.

    Environment variables:
    - LOG_LEVEL                               (optional)
    - ORCHESTRATOR_CHECKPOINT_BACKEND         (optional, file | memory)
    - ORCHESTRATOR_STATE_PATH                 (optional)
    - ORCHESTRATOR_SESSION_PREFIX             (optional)
    - ORCHESTRATOR_COMMAND_TIMEOUT_SECONDS    (optional)
    - ORCHESTRATOR_MAX_BUILD_RETRIES          (optional)
    - ORCHESTRATOR_READINESS_POLL_INTERVAL_SECONDS (optional)
    - ORCHESTRATOR_READINESS_MAX_WAIT_SECONDS (optional)
    - ORCHESTRATOR_BUILD_OUTPUT_PATH          (optional)
    - ANDROID_HOME / JAVA_HOME                (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `OrchestratorSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    checkpoint_backend: Literal["file", "memory"] = Field(
        default="file",
        validation_alias="ORCHESTRATOR_CHECKPOINT_BACKEND",
        description="Where session checkpoints are kept: durable files or process memory",
    )

    state_path: Path = Field(
        default=Path("workflow_state"),
        validation_alias="ORCHESTRATOR_STATE_PATH",
        description="Directory where durable session checkpoints are persisted",
    )

    session_prefix: str = Field(
        default="mobile",
        min_length=1,
        validation_alias="ORCHESTRATOR_SESSION_PREFIX",
        description="Prefix of generated session ids",
    )

    command_timeout_seconds: float = Field(
        default=300.0,
        ge=0,
        validation_alias="ORCHESTRATOR_COMMAND_TIMEOUT_SECONDS",
        description="Default timeout for external commands; 0 disables the limit",
    )

    max_build_retries: int = Field(
        default=3,
        ge=1,
        validation_alias="ORCHESTRATOR_MAX_BUILD_RETRIES",
        description="Build attempts allowed before the workflow gives up",
    )

    readiness_poll_interval_seconds: float = Field(
        default=2.0,
        validation_alias="ORCHESTRATOR_READINESS_POLL_INTERVAL_SECONDS",
        description="Interval between device readiness checks",
    )

    readiness_max_wait_seconds: float = Field(
        default=120.0,
        validation_alias="ORCHESTRATOR_READINESS_MAX_WAIT_SECONDS",
        description="Budget for a device to become ready",
    )

    build_output_path: Path = Field(
        default=Path("build_output"),
        validation_alias="ORCHESTRATOR_BUILD_OUTPUT_PATH",
        description="Directory for app artifacts and build logs",
    )

    android_home: str | None = Field(
        default=None,
        validation_alias="ANDROID_HOME",
        description="Android SDK location used to seed the Android setup check",
    )

    java_home: str | None = Field(
        default=None,
        validation_alias="JAVA_HOME",
        description="JDK location used to seed the Android setup check",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_readiness_polling(self) -> OrchestratorSettings:
        if self.readiness_poll_interval_seconds <= 0:
            raise ValueError("ORCHESTRATOR_READINESS_POLL_INTERVAL_SECONDS must be > 0")
        if self.readiness_poll_interval_seconds > self.readiness_max_wait_seconds:
            raise ValueError(
                "ORCHESTRATOR_READINESS_POLL_INTERVAL_SECONDS must not exceed "
                "ORCHESTRATOR_READINESS_MAX_WAIT_SECONDS"
            )
        return self

    @property
    def checkpoint_dir(self) -> Path:
        """Directory holding one JSON checkpoint per session."""

        return self.state_path / "sessions"

    @property
    def build_log_dir(self) -> Path:
        return self.build_output_path / "logs"

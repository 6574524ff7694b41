"""Device records, ranking, and bounded readiness polling.

Ranking rules:
    - Simulators: a booted device wins outright; otherwise the highest version
      ordinal wins, ties broken by name in descending order.
    - Emulators: the compatible emulator with the highest API level wins;
      otherwise the highest API level overall.
    - An empty candidate list yields ``None``, which callers treat as "create
      one" rather than as an error.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

BOOTED = "Booted"

Clock = Callable[[], float]
Sleeper = Callable[[float], None]


def parse_version(version: str) -> int:
    """Convert ``MAJOR.MINOR[.PATCH]`` into a comparable ordinal.

    ``MAJOR*1000 + MINOR*10 + PATCH``; missing parts count as 0. Used for ranking only.
    """

    parts: list[int] = []
    for raw in version.strip().split(".")[:3]:
        try:
            parts.append(int(raw))
        except ValueError:
            parts.append(0)
    while len(parts) < 3:
        parts.append(0)
    major, minor, patch = parts
    return major * 1000 + minor * 10 + patch


@dataclass(frozen=True, slots=True)
class SimulatorDevice:
    name: str
    udid: str
    state: str
    runtime_identifier: str = ""
    ios_version: str | None = None

    @property
    def is_booted(self) -> bool:
        return self.state == BOOTED

    @property
    def version_ordinal(self) -> int:
        return parse_version(self.ios_version) if self.ios_version else 0


@dataclass(frozen=True, slots=True)
class EmulatorDevice:
    name: str
    api_level: int | None = None
    is_compatible: bool = True


def select_best_simulator(devices: Sequence[SimulatorDevice]) -> SimulatorDevice | None:
    if not devices:
        return None

    for device in devices:
        if device.is_booted:
            logger.debug("Found running simulator", extra={"device": device.name})
            return device

    ranked = sorted(devices, key=lambda d: (d.version_ordinal, d.name), reverse=True)
    best = ranked[0]
    logger.debug(
        "Selected newest simulator",
        extra={"device": best.name, "ios_version": best.ios_version},
    )
    return best


def select_best_emulator(emulators: Sequence[EmulatorDevice]) -> EmulatorDevice | None:
    if not emulators:
        return None

    def api(e: EmulatorDevice) -> int:
        return e.api_level or 0

    compatible = [e for e in emulators if e.is_compatible]
    if compatible:
        best = max(compatible, key=api)
        logger.debug(
            "Selected compatible emulator with highest API level",
            extra={"device": best.name, "api_level": best.api_level},
        )
        return best

    fallback = max(emulators, key=api)
    logger.debug(
        "Selected fallback emulator",
        extra={"device": fallback.name, "api_level": fallback.api_level},
    )
    return fallback


def poll_until(
    check: Callable[[], bool],
    *,
    poll_interval_seconds: float,
    max_wait_seconds: float,
    clock: Clock = time.monotonic,
    sleep: Sleeper = time.sleep,
) -> tuple[bool, float]:
    """Call ``check`` every ``poll_interval_seconds`` until it returns True.

    Returns:
        ``(ready, elapsed_seconds)``. ``ready`` is False when the budget ran out.
    """

    if poll_interval_seconds <= 0:
        raise ValueError("poll_interval_seconds must be > 0")
    if max_wait_seconds < 0:
        raise ValueError("max_wait_seconds must be >= 0")

    started = clock()
    while clock() - started < max_wait_seconds:
        if check():
            return True, clock() - started
        sleep(poll_interval_seconds)
    return False, clock() - started

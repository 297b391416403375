"""
Liveness watchdog for a running ingest pipeline.

The pipeline reports forward progress through ``record_activity()``; the
health endpoint asks ``is_healthy()``. A worker is STALLED once it has gone
longer than the idle threshold without progress, and ACTIVE again as soon as
progress resumes. The supervisor only reports: restarting a stalled worker is
the orchestrator's call.
"""
import math
import threading
import time
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

from utils import config
from utils.logger import get_logger

logger = get_logger(__name__)


class InvalidConfiguration(ValueError):
    pass


class HealthStatus(str, Enum):
    ACTIVE = "active"
    STALLED = "stalled"


class HealthReport(BaseModel):
    """Informational body of the health endpoint."""

    healthy: bool
    status: HealthStatus
    enabled: bool
    idle_threshold_seconds: float = Field(..., ge=0)
    seconds_since_activity: float = Field(..., ge=0)


class LivenessSupervisor:
    def __init__(
        self,
        idle_threshold_seconds: float = 0,
        enabled: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        try:
            threshold = float(idle_threshold_seconds)
        except (TypeError, ValueError):
            raise InvalidConfiguration(
                f"idle threshold must be a number, got {idle_threshold_seconds!r}"
            )
        if math.isnan(threshold) or math.isinf(threshold) or threshold < 0:
            raise InvalidConfiguration(
                f"idle threshold must be a finite value >= 0, got {idle_threshold_seconds!r}"
            )

        if enabled is None:
            enabled = threshold > 0
        if enabled and threshold == 0:
            logger.warning("Watchdog enabled without an idle threshold; watchdog disabled")
            enabled = False

        self.idle_threshold = threshold
        self.enabled = bool(enabled)
        self._clock = clock
        self._lock = threading.Lock()
        self._last_activity_at = clock()

    @classmethod
    def from_env(cls, environ=None, clock: Callable[[], float] = time.monotonic):
        """
        Build from HEALTH_CHECK_ENABLED / HEALTH_CHECK_IDLE_SECONDS.

        Both absent, false or 0 leave the watchdog disabled.
        """
        try:
            enabled = config.env_flag("HEALTH_CHECK_ENABLED", False, environ)
            threshold = config.env_float("HEALTH_CHECK_IDLE_SECONDS", 0.0, environ)
        except ValueError as e:
            raise InvalidConfiguration(str(e))

        return cls(threshold, enabled=enabled, clock=clock)

    @property
    def last_activity_at(self) -> float:
        with self._lock:
            return self._last_activity_at

    def record_activity(self) -> None:
        now = self._clock()
        with self._lock:
            if now > self._last_activity_at:
                self._last_activity_at = now

    def seconds_since_activity(self) -> float:
        now = self._clock()
        with self._lock:
            last = self._last_activity_at
        return max(0.0, now - last)

    def _evaluate(self):
        idle = self.seconds_since_activity()
        if self.enabled and idle > self.idle_threshold:
            return idle, HealthStatus.STALLED
        return idle, HealthStatus.ACTIVE

    def state(self) -> HealthStatus:
        return self._evaluate()[1]

    def is_healthy(self) -> bool:
        return self.state() is HealthStatus.ACTIVE

    def snapshot(self) -> HealthReport:
        idle, status = self._evaluate()
        return HealthReport(
            healthy=status is HealthStatus.ACTIVE,
            status=status,
            enabled=self.enabled,
            idle_threshold_seconds=self.idle_threshold,
            seconds_since_activity=idle,
        )

    def __repr__(self):
        return (
            f"LivenessSupervisor(enabled={self.enabled}, "
            f"idle_threshold={self.idle_threshold})"
        )

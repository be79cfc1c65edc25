from __future__ import annotations

from abc import abstractmethod
import asyncio
from dataclasses import dataclass, field
import logging
import time
from typing import Callable

from panel_sensors.executor import FAILURE_EXIT_CODE
from panel_sensors.plugins import InstanceT, SampleResult, SensorPlugin


@dataclass
class RateGate:
    """Decides whether a sample call should re-fetch from its data source.

    Uses a monotonic clock. The timestamp is claimed before the fetch starts,
    so a fetch that outlives ``rate_ms`` does not trigger a second one.
    """

    clock: Callable[[], float] = time.monotonic
    last_sampled: float | None = None

    def claim(self, rate_ms: float) -> bool:
        now = self.clock()
        if self.last_sampled is None or (now - self.last_sampled) * 1000 > rate_ms:
            self.last_sampled = now
            return True
        return False

    def reset(self) -> None:
        self.last_sampled = None


@dataclass
class SensorInstance:
    identity: str
    gate: RateGate = field(default_factory=RateGate)
    last_success: bool = False
    exit_code: int = FAILURE_EXIT_CODE
    fault: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def mark_success(self, logger: logging.Logger, exit_code: int = 0) -> None:
        if self.fault:
            logger.info("%s recovered.", self.identity)
        self.fault = False
        self.last_success = True
        self.exit_code = exit_code

    def mark_failure(
        self,
        logger: logging.Logger,
        exit_code: int,
        message: str,
        *args: object,
        exc_info: bool = False,
    ) -> None:
        """Record a failed fetch; only the first failure of a streak is logged."""
        if not self.fault:
            logger.error(message, *args, exc_info=exc_info)
            self.fault = True
        else:
            logger.debug(message, *args)
        self.last_success = False
        self.exit_code = exit_code

    def release(self) -> None:
        self.gate.reset()


class RateGatedSensor(SensorPlugin[InstanceT]):
    """Sensor that re-fetches at most once per ``rate_ms`` and renders cached state."""

    async def sample(self, rate_ms: float, fmt: str, instance: InstanceT) -> SampleResult:
        async with instance.lock:
            if instance.gate.claim(rate_ms):
                try:
                    await self.refresh(instance)
                except Exception as exc:
                    instance.mark_failure(
                        self.logger,
                        FAILURE_EXIT_CODE,
                        "%s: refresh failed: %s",
                        instance.identity,
                        exc,
                        exc_info=True,
                    )
            return SampleResult(
                value=self.render(fmt, instance), min=0, max=self.max_value(instance)
            )

    @abstractmethod
    async def refresh(self, instance: InstanceT) -> None:
        """Fetch from the data source and replace cached state on success."""

    @abstractmethod
    def render(self, fmt: str, instance: InstanceT) -> str:
        ...

    @abstractmethod
    def max_value(self, instance: InstanceT) -> float:
        ...

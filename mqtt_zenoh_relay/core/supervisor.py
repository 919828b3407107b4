"""
Retry supervision for the relay loops.

A supervised loop that raises is logged and started again, indefinitely. A
loop that returns has shut down on purpose and is not restarted.

With the default ``RestartPolicy`` restarts are immediate; the supervisor
only yields to the event loop between runs. A non-zero
``initial_delay_seconds`` turns on capped exponential backoff.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..datastructures.type_aliases import DurationSeconds, LoopName
from .statistics import RelayStatistics


class RestartPolicy(BaseModel):
    """Delay between restarts of a failed relay loop."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    initial_delay_seconds: float = Field(
        0.0, ge=0, description="Delay before the first restart, 0 for none."
    )
    max_delay_seconds: float = Field(
        30.0, ge=0, description="Upper bound for the backoff delay."
    )
    backoff_multiplier: float = Field(
        2.0, ge=1.0, description="Factor applied to the delay after each restart."
    )
    # A run lasting at least this long counts as healthy and resets the backoff.
    reset_after_seconds: float = Field(60.0, ge=0)

    @model_validator(mode="after")
    def check_delay_bounds(self) -> RestartPolicy:
        if self.max_delay_seconds < self.initial_delay_seconds:
            raise ValueError("max_delay_seconds must be >= initial_delay_seconds")
        return self

    def delay_for(self, attempt: int) -> DurationSeconds:
        """Delay before restart number ``attempt`` (0-based)."""
        if self.initial_delay_seconds == 0:
            return 0.0
        delay = self.initial_delay_seconds * (self.backoff_multiplier**attempt)
        return min(delay, self.max_delay_seconds)


async def supervise(
    name: LoopName,
    run_once: Callable[[], Awaitable[None]],
    policy: RestartPolicy,
    statistics: RelayStatistics,
) -> None:
    """Run ``run_once`` until it returns, restarting it whenever it raises."""
    attempt = 0
    while True:
        started = time.monotonic()
        try:
            await run_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if time.monotonic() - started >= policy.reset_after_seconds:
                attempt = 0
            statistics.record_restart(name)
            delay = policy.delay_for(attempt)
            attempt += 1
            logger.error(f"Error in {name}: {e!r}")
            if delay > 0:
                logger.info(f"Restarting {name} in {delay:.2f} seconds")
            await asyncio.sleep(delay)
            continue
        logger.info(f"{name} exited")
        return

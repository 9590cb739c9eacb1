"""
Stage timing for the gap-detection run.

Each stage is wrapped in ``StepTimer.step`` / ``StepTimer.async_step``;
durations are logged as they finish and once more as a breakdown at the
end of the run.
"""

import logging
import time
from contextlib import asynccontextmanager, contextmanager
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def log_timing(run_name: str, action: str, duration_ms: Optional[float] = None):
    """Log a timing event in standard format."""
    if duration_ms is not None:
        logger.info("[TIMING] %s: %s — duration=%.0fms", run_name, action, duration_ms)
    else:
        logger.info("[TIMING] %s: %s", run_name, action)


class StepTimer:
    """
    Records the duration of each named stage of one run.

    Usage:
        timer = StepTimer("void_detection")
        with timer.step("scoring"):
            score()
        async with timer.async_step("synthesis"):
            await synthesize()
        timer.summary()

    A stage that raises is still recorded.
    """

    def __init__(self, run_name: str):
        self.run_name = run_name
        self.steps: Dict[str, float] = {}
        self._started = time.perf_counter()

    def _record(self, step_name: str, started: float) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        self.steps[step_name] = duration_ms
        log_timing(self.run_name, step_name, duration_ms)

    @contextmanager
    def step(self, step_name: str):
        started = time.perf_counter()
        try:
            yield
        finally:
            self._record(step_name, started)

    @asynccontextmanager
    async def async_step(self, step_name: str):
        started = time.perf_counter()
        try:
            yield
        finally:
            self._record(step_name, started)

    def summary(self) -> float:
        """Log total wall time with the per-stage breakdown; returns total ms."""
        total_ms = (time.perf_counter() - self._started) * 1000
        breakdown = ", ".join(f"{name}={ms:.0f}ms" for name, ms in self.steps.items())
        log_timing(self.run_name, f"TOTAL ({breakdown or 'no stages'})", total_ms)
        return total_ms

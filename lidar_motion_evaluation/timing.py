"""
Timing Utilities for LiDAR Motion Detection Evaluation

Process-wide registry of named timers. The evaluator writes the
formatted snapshot of this registry to the run's timings file after
every frame.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class TimingResult:
    """
    Running statistics of one named timer.

    Only aggregates are kept, so recording and formatting cost the same
    however many samples have been taken.
    """

    name: str
    call_count: int = 0
    total_time: float = 0.0
    sum_squares: float = 0.0
    min_time: float = 0.0
    max_time: float = 0.0

    def add(self, elapsed: float) -> None:
        """Fold one measured duration into the statistics."""
        if self.call_count == 0:
            self.min_time = elapsed
            self.max_time = elapsed
        else:
            self.min_time = min(self.min_time, elapsed)
            self.max_time = max(self.max_time, elapsed)
        self.call_count += 1
        self.total_time += elapsed
        self.sum_squares += elapsed * elapsed

    @property
    def avg_time(self) -> float:
        return self.total_time / self.call_count if self.call_count > 0 else 0.0

    @property
    def std_time(self) -> float:
        if self.call_count < 2:
            return 0.0
        variance = self.sum_squares / self.call_count - self.avg_time ** 2
        return math.sqrt(max(variance, 0.0))

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "total_time": self.total_time,
            "call_count": self.call_count,
            "avg_time": self.avg_time,
            "std_time": self.std_time,
            "min_time": self.min_time,
            "max_time": self.max_time,
        }


class TimingRegistry:
    """Thread-safe collection of named timing results."""

    def __init__(self):
        self._timings: Dict[str, TimingResult] = {}
        self._lock = threading.Lock()

    def record(self, name: str, elapsed: float) -> None:
        """Add one measured duration in seconds."""
        with self._lock:
            if name not in self._timings:
                self._timings[name] = TimingResult(name=name)
            self._timings[name].add(elapsed)

    def get(self, name: str) -> Optional[TimingResult]:
        return self._timings.get(name)

    def reset(self) -> None:
        with self._lock:
            self._timings.clear()

    def summary(self) -> Dict[str, Dict[str, float]]:
        """Get summary of all timings."""
        with self._lock:
            return {name: result.to_dict() for name, result in self._timings.items()}

    def format(self) -> str:
        """
        Format all timers as a text table.

        One line per timer: name, call count, total, mean +- std and
        [min, max], all in seconds.
        """
        with self._lock:
            results = sorted(self._timings.values(), key=lambda r: r.name)

        if not results:
            return "No timings recorded."

        name_width = max(len("Timer"), max(len(r.name) for r in results))
        lines = [
            f"{'Timer':<{name_width}}  {'Count':>8}  {'Total':>10}  "
            f"{'Mean +- Std':>22}  [Min, Max]",
            "-" * (name_width + 70),
        ]
        for r in results:
            lines.append(
                f"{r.name:<{name_width}}  {r.call_count:>8d}  {r.total_time:>10.4f}  "
                f"({r.avg_time:>8.6f} +- {r.std_time:>8.6f})  "
                f"[{r.min_time:.6f}, {r.max_time:.6f}]"
            )
        return "\n".join(lines)


# Global registry used by Timer and format_timings
timings = TimingRegistry()


class Timer:
    """Context manager for timing code blocks."""

    def __init__(
        self,
        name: str = "",
        log: bool = False,
        registry: Optional[TimingRegistry] = None,
    ):
        self.name = name
        self.log = log
        self.registry = registry if registry is not None else timings
        self.start_time = None
        self.elapsed = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed = time.perf_counter() - self.start_time
        self.registry.record(self.name, self.elapsed)
        if self.log:
            logger.info(f"{self.name}: {self.elapsed:.4f}s")


def format_timings() -> str:
    """Formatted snapshot of the global timing registry."""
    return timings.format()


__all__ = [
    "TimingResult",
    "TimingRegistry",
    "Timer",
    "timings",
    "format_timings",
]

"""Stage timing for simulation runs."""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator


@dataclass
class RunTiming:
    """Wall-clock time of a run, split by stage."""

    draws: int
    stages: Dict[str, float] = field(default_factory=dict)

    @property
    def total_seconds(self) -> float:
        return sum(self.stages.values())

    @property
    def draws_per_second(self) -> float:
        total = self.total_seconds
        return self.draws / total if total > 0 else float("inf")

    def as_log_context(self) -> Dict[str, float]:
        context = {f"{name}_seconds": round(seconds, 6) for name, seconds in self.stages.items()}
        context["elapsed_seconds"] = self.total_seconds
        return context


class RunTimer:
    """Accumulates stage durations for one run.

    Example:
        timer = RunTimer(draws=10_000)
        with timer.stage("sample"):
            ...
        timer.timing.total_seconds
    """

    def __init__(self, draws: int):
        self.timing = RunTiming(draws=draws)

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self.timing.stages[name] = self.timing.stages.get(name, 0.0) + elapsed

"""Per-request phase timings for the generation loop."""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class TimingStats:
    """Accumulated wall time per named phase (``scorer``, ``window``, ...)."""

    totals: dict[str, float] = field(default_factory=dict)
    counts: dict[str, int] = field(default_factory=dict)

    def add(self, name: str, elapsed: float) -> None:
        self.totals[name] = self.totals.get(name, 0.0) + elapsed
        self.counts[name] = self.counts.get(name, 0) + 1

    def mean(self, name: str) -> float:
        count = self.counts.get(name, 0)
        return self.totals.get(name, 0.0) / count if count else 0.0

    def snapshot(self) -> dict[str, float]:
        return dict(self.totals)


@contextmanager
def timer(stats: TimingStats, name: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        stats.add(name, time.perf_counter() - start)


def tokens_per_second(tokens: int, elapsed: float) -> float:
    return tokens / elapsed if elapsed > 0 else 0.0


def format_timings(timings: Mapping[str, float], tokens: int) -> str:
    """One-line summary such as ``scorer 1.20s (8.3 tok/s), window 0.01s``."""
    parts = []
    for name in sorted(timings):
        elapsed = timings[name]
        part = f"{name} {elapsed:.2f}s"
        if name == "scorer" and tokens:
            part += f" ({tokens_per_second(tokens, elapsed):.1f} tok/s)"
        parts.append(part)
    return ", ".join(parts)

"""
Failure classification for burn-in runs.

Several workers run the same benchmarks at once, so some benchmarks fail
because of shared external resources (ports, temporary files) rather than
the JIT. Those known-noise failures are matched by SuppressionRule and
dropped.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from burnin.execution import RunResult


@dataclass(frozen=True)
class SuppressionRule:
    """A benchmark/marker pair that marks a failing run as benign."""

    benchmark: str
    marker: str
    reason: str = ""

    def matches(self, benchmark_name: str, output: str) -> bool:
        return benchmark_name == self.benchmark and self.marker in output


DEFAULT_SUPPRESSION_RULES = (
    SuppressionRule(
        benchmark="lobsters",
        marker="HTTP status is",
        reason="port contention between concurrent workers",
    ),
    SuppressionRule(
        benchmark="hexapdf",
        marker="Incorrect size",
        reason="filesystem race between concurrent workers",
    ),
)


class FailureClassifier:
    """Decides whether a finished run is a genuine failure."""

    def __init__(self, extra_rules: Iterable[SuppressionRule] = ()) -> None:
        self.rules: tuple[SuppressionRule, ...] = DEFAULT_SUPPRESSION_RULES + tuple(extra_rules)

    def find_suppression(self, benchmark_name: str, result: RunResult) -> SuppressionRule | None:
        for rule in self.rules:
            if rule.matches(benchmark_name, result.output):
                return rule
        return None

    def classify(self, benchmark_name: str, result: RunResult) -> bool:
        """Return True if the run is a genuine failure worth recording."""
        if result.succeeded:
            return False
        return self.find_suppression(benchmark_name, result) is None

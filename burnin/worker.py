"""
The burn-in worker loop.

A BurnInWorker runs inside its own process. It repeatedly picks a random
benchmark, runs it under a freshly sampled configuration, and records any
genuine failure. Failures never stop the loop: the goal is coverage over a
long soak window.
"""

from __future__ import annotations

import random
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from burnin.artifacts import FailureReport, record_failure
from burnin.classifier import FailureClassifier
from burnin.execution import ExecutionManager
from burnin.sampler import ConfigurationSampler


class StopEvent(Protocol):
    def is_set(self) -> bool: ...


@dataclass
class WorkerState:
    """Per-worker bookkeeping. ever_failed is sticky."""

    ever_failed: bool = False
    iterations: int = 0
    failures: int = 0


class BurnInWorker:
    """Runs random benchmarks under random configurations until stopped."""

    def __init__(
        self,
        worker_id: int,
        bench_names: Sequence[str],
        execution_manager: ExecutionManager,
        logs_dir: Path,
        runtime_version: str,
        run_time: int,
        no_yjit: bool = False,
        seed: int | None = None,
        classifier: FailureClassifier | None = None,
    ):
        """
        Initialize the worker.

        Args:
            worker_id: Index of this worker within the supervisor
            bench_names: The benchmarks to choose from (must not be empty)
            execution_manager: Runs the benchmark child processes
            logs_dir: Shared directory for failure reports
            runtime_version: Interpreter version string written into reports
            run_time: MIN_BENCH_TIME passed to each benchmark, in seconds
            no_yjit: Run the baseline interpreter without YJIT flags
            seed: Seed for this worker's random generator
            classifier: Failure classifier; the default rule set if None
        """
        if not bench_names:
            raise ValueError("BurnInWorker needs at least one benchmark")
        self.worker_id = worker_id
        self.bench_names = list(bench_names)
        self.execution_manager = execution_manager
        self.logs_dir = Path(logs_dir)
        self.runtime_version = runtime_version
        self.run_time = run_time
        self.no_yjit = no_yjit
        self.seed = seed
        self.classifier = classifier or FailureClassifier()
        self.rng = random.Random(seed)
        self.sampler = ConfigurationSampler(self.rng)
        self.state = WorkerState()

    def run_once(self) -> bool:
        """
        Run a single random benchmark.

        Returns:
            True if the run was a genuine failure and a report was written.
        """
        bench_name = self.rng.choice(self.bench_names)
        config = self.sampler.sample(jit_enabled=not self.no_yjit)
        result = self.execution_manager.execute(
            bench_name, config, self.run_time, jit_disabled=self.no_yjit
        )
        self.state.iterations += 1

        if result.succeeded:
            return False

        rule = self.classifier.find_suppression(bench_name, result)
        if rule is not None:
            print(f"  [~] Ignoring {bench_name} failure ({rule.reason}).", flush=True)
            return False

        self.state.ever_failed = True
        self.state.failures += 1
        print("ERROR", flush=True)

        report = FailureReport(
            runtime_version=self.runtime_version,
            pid=result.pid,
            display_command=result.display_command,
            output=result.output,
        )
        out_path = record_failure(self.logs_dir, bench_name, report)
        print(f"writing output file {out_path}", flush=True)
        return True

    def run(self, stop_event: StopEvent | None = None, max_iterations: int | None = None) -> None:
        """
        Run benchmarks until stop_event is set or max_iterations is reached.

        With neither given, the loop only ends when the process is killed.
        HarnessError from the execution manager propagates to the caller.
        """
        while stop_event is None or not stop_event.is_set():
            if max_iterations is not None and self.state.iterations >= max_iterations:
                break
            self.run_once()
            if self.state.ever_failed:
                print("ERROR ENCOUNTERED", flush=True)


def run_worker(worker: BurnInWorker, stop_event: StopEvent | None = None) -> None:
    """Process entry point for a worker spawned by the supervisor."""
    try:
        worker.run(stop_event)
    except KeyboardInterrupt:
        print(f"[!] Worker #{worker.worker_id} interrupted.", file=sys.stderr)

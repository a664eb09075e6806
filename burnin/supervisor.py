"""
Process fan-out for the burn-in fuzzer.

The Supervisor forks one process per worker and then idles. Workers share
nothing but the log directory, so a worker that crashes or hangs cannot
affect its siblings. The supervisor never restarts a dead worker; it only
reports it.
"""

from __future__ import annotations

import hashlib
import multiprocessing
import os
import sys
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import psutil

from burnin.artifacts import count_failure_reports
from burnin.worker import BurnInWorker, run_worker

LONG_RUN_TIME = 3600 * 2  # 2 hours
SHORT_RUN_TIME = 10
POLL_INTERVAL = 0.05
STATUS_INTERVAL = 60.0


def derive_seed(seed: int, *parts: object) -> int:
    """Derive a stable 64-bit seed from a base seed and some labels."""
    h = hashlib.blake2b(digest_size=8)
    h.update(str(seed).encode("utf-8"))
    for part in parts:
        h.update(b"|")
        h.update(str(part).encode("utf-8"))
    return int.from_bytes(h.digest(), byteorder="big", signed=False)


def worker_seeds(num_procs: int, base_seed: int | None = None) -> list[int]:
    """Return one seed per worker, from base_seed if given, else from the OS."""
    if base_seed is None:
        return [int.from_bytes(os.urandom(8), byteorder="big") for _ in range(num_procs)]
    return [derive_seed(base_seed, "worker", i) for i in range(num_procs)]


def run_time_for(index: int, num_long_runs: int) -> int:
    """The first num_long_runs workers get the long budget."""
    return LONG_RUN_TIME if index < num_long_runs else SHORT_RUN_TIME


def _default_context() -> Any:
    if "fork" in multiprocessing.get_all_start_methods():
        return multiprocessing.get_context("fork")
    return multiprocessing.get_context()


def child_processes(pid: int | None) -> list[psutil.Process]:
    """Return every descendant of pid, or nothing if it is already gone."""
    if pid is None:
        return []
    try:
        return psutil.Process(pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []


class Supervisor:
    """
    Spawns and watches the burn-in worker processes.

    After start(), run() idles until its stop event is set, printing a short
    status line every STATUS_INTERVAL seconds and reporting any worker that
    exits.
    """

    def __init__(
        self,
        worker_factory: Callable[[int, int, int], BurnInWorker],
        num_procs: int,
        num_long_runs: int,
        logs_dir: Path,
        seeds: Sequence[int] | None = None,
        mp_context: Any = None,
    ):
        """
        Initialize the Supervisor.

        Args:
            worker_factory: Called as factory(index, run_time, seed) to build
                each worker
            num_procs: Total number of worker processes
            num_long_runs: How many of them use the long run budget
            logs_dir: The shared log directory, used for status reporting
            seeds: One seed per worker; fresh OS entropy if None
            mp_context: multiprocessing context; fork where available
        """
        if num_procs < 1:
            raise ValueError("num_procs must be at least 1")
        if num_long_runs < 0:
            raise ValueError("num_long_runs must not be negative")
        if seeds is not None and len(seeds) != num_procs:
            raise ValueError("need exactly one seed per worker")

        self.worker_factory = worker_factory
        self.num_procs = num_procs
        self.num_long_runs = min(num_long_runs, num_procs)
        self.logs_dir = Path(logs_dir)
        self.seeds = list(seeds) if seeds is not None else worker_seeds(num_procs)
        self.ctx = mp_context or _default_context()
        self.stop_event = self.ctx.Event()
        self.processes: list[Any] = []
        self._reported_exits: set[int] = set()
        self._last_status = 0.0

    def start(self) -> None:
        """Fork all worker processes."""
        print(f"num processes: {self.num_procs}", flush=True)
        for index in range(self.num_procs):
            run_time = run_time_for(index, self.num_long_runs)
            seed = self.seeds[index]
            worker = self.worker_factory(index, run_time, seed)
            process = self.ctx.Process(
                target=run_worker,
                args=(worker, self.stop_event),
                name=f"burnin-worker-{index}",
            )
            process.start()
            self.processes.append(process)
            print(
                f"[+] Started worker #{index} (pid {process.pid}, run_time={run_time}s, seed={seed})",
                file=sys.stderr,
            )

    def alive_count(self) -> int:
        return sum(1 for p in self.processes if p.is_alive())

    def check_workers(self) -> list[int]:
        """Report workers that exited since the last check and return their indexes."""
        newly_exited = []
        for index, process in enumerate(self.processes):
            if index in self._reported_exits or process.is_alive():
                continue
            self._reported_exits.add(index)
            newly_exited.append(index)
            print(
                f"[!] Worker #{index} (pid {process.pid}) exited with code {process.exitcode}.",
                file=sys.stderr,
            )
        return newly_exited

    def report_status(self) -> None:
        failures = count_failure_reports(self.logs_dir)
        try:
            load = f"{psutil.getloadavg()[0]:.2f}"
        except (AttributeError, OSError):
            load = "n/a"
        print(
            f"[*] Status: {self.alive_count()}/{self.num_procs} workers alive, "
            f"{failures} failure report(s), load {load}",
            file=sys.stderr,
        )

    def poll(self) -> None:
        self.check_workers()
        now = time.monotonic()
        if now - self._last_status >= STATUS_INTERVAL:
            self._last_status = now
            self.report_status()

    def run(self, stop_event: Any = None) -> None:
        """Idle until stop_event (the supervisor's own event by default) is set."""
        stop_event = stop_event or self.stop_event
        self._last_status = time.monotonic()
        while not stop_event.is_set():
            self.poll()
            time.sleep(POLL_INTERVAL)

    def shutdown(self, timeout: float = 5.0) -> None:
        """
        Signal the workers to stop, then terminate them and their benchmarks.

        A worker's benchmark child would outlive a terminated worker, so the
        children are collected first and terminated once the worker is gone.
        Workers are terminated before their children so that a killed
        benchmark is never seen, and recorded, as a failure.
        """
        self.stop_event.set()
        children: list[psutil.Process] = []
        for process in self.processes:
            if process.is_alive():
                children.extend(child_processes(process.pid))
                process.terminate()
        for process in self.processes:
            process.join(timeout)

        for child in children:
            try:
                child.terminate()
            except psutil.NoSuchProcess:
                pass
        _, still_alive = psutil.wait_procs(children, timeout=timeout)
        for child in still_alive:
            try:
                child.kill()
            except psutil.NoSuchProcess:
                pass

"""
Failure report persistence for the burn-in fuzzer.

Reports are written to a flat log directory shared by every worker process.
Each one is published by hard-linking a fully written temporary file onto a
free name. Two workers recording a failure for the same benchmark at the same
moment never overwrite each other, and a killed worker never leaves a
truncated report behind.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

REPORT_PREFIX = "error"
REPORT_SUFFIX = ".txt"
TEMP_PREFIX = ".partial_"


@dataclass(frozen=True)
class FailureReport:
    """Everything needed to reproduce and inspect a failed run."""

    runtime_version: str
    pid: int
    display_command: str
    output: str

    def render(self) -> str:
        return (
            f"{self.runtime_version}\n\n"
            f"pid {self.pid}\n"
            f"{self.display_command}\n\n"
            f"{self.output}"
        )


def report_path(logs_dir: Path, benchmark_name: str, sequence: int) -> Path:
    return Path(logs_dir) / f"{REPORT_PREFIX}_{benchmark_name}_{sequence:03d}{REPORT_SUFFIX}"


def record_failure(logs_dir: Path, benchmark_name: str, report: FailureReport) -> Path:
    """
    Write a failure report to the first free error_<benchmark>_<NNN>.txt.

    The report is written in full to a hidden temporary file first and then
    hard-linked to its final name, so a report file either holds the whole
    report or does not exist. Sequence numbers are tried from 1 upwards; a
    link onto a name another worker already holds fails and the next number
    is tried instead.

    Args:
        logs_dir: The shared log directory (must already exist).
        benchmark_name: Name of the failing benchmark.
        report: The report to write.

    Returns:
        Path of the newly published report file.
    """
    fd, tmp_name = tempfile.mkstemp(dir=logs_dir, prefix=TEMP_PREFIX, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="replace") as f:
            f.write(report.render())
        os.chmod(tmp_name, 0o644)
        sequence = 1
        while True:
            out_path = report_path(logs_dir, benchmark_name, sequence)
            try:
                os.link(tmp_name, out_path)
            except FileExistsError:
                sequence += 1
                continue
            return out_path
    finally:
        os.unlink(tmp_name)


def count_failure_reports(logs_dir: Path) -> int:
    """Return the number of failure reports currently in the log directory."""
    try:
        return sum(1 for _ in Path(logs_dir).glob(f"{REPORT_PREFIX}_*{REPORT_SUFFIX}"))
    except OSError:
        return 0

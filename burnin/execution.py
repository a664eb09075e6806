"""
Benchmark execution for the burn-in fuzzer.

This module provides the ExecutionManager class which handles:
- Resolving a benchmark name to its script on disk
- Building the child environment and interpreter command line
- Running the benchmark with stdout and stderr merged into one stream
"""

from __future__ import annotations

import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from burnin.sampler import RunConfiguration

# Fixed settings for every benchmark run, applied before the sampled overrides.
BASE_ENV = {
    "WARMUP_ITRS": "0",
    "RUST_BACKTRACE": "1",
}


class HarnessError(Exception):
    """
    Raised when the test harness itself is broken.

    This covers missing benchmark scripts and interpreters that cannot be
    launched. It is never a workload failure and must not be recorded as one.
    """


@dataclass
class RunResult:
    """The outcome of a single benchmark run."""

    output: str
    succeeded: bool
    pid: int
    returncode: int = 0
    display_command: str = ""


def resolve_script_path(benchmarks_dir: Path, benchmark_name: str) -> Path:
    """
    Find the script for a benchmark.

    The per-benchmark directory layout (<name>/benchmark.rb) is checked
    first, then the flat layout (<name>.rb).

    Raises:
        HarnessError: If neither layout exists.
    """
    candidates = [
        benchmarks_dir / benchmark_name / "benchmark.rb",
        benchmarks_dir / f"{benchmark_name}.rb",
    ]
    for path in candidates:
        if path.is_file():
            return path
    tried = ", ".join(str(p) for p in candidates)
    raise HarnessError(f"No script found for benchmark '{benchmark_name}' (tried: {tried})")


def build_env(
    run_time: int,
    env_overrides: Mapping[str, str],
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return the child environment. Sampled overrides win on key collision."""
    env = dict(os.environ if base_env is None else base_env)
    env.update(BASE_ENV)
    env["MIN_BENCH_TIME"] = str(run_time)
    env.update(env_overrides)
    return env


def format_display_command(cmd: Sequence[str], env_overrides: Mapping[str, str]) -> str:
    """
    Render a command for humans, with env overrides as `export` prefixes.

    This string is only ever printed or written to reports. The child is
    launched from the argument list, never from this text.
    """
    parts = [f"export {name}={shlex.quote(value)}" for name, value in env_overrides.items()]
    parts.append(shlex.join(cmd))
    return " && ".join(parts)


class ExecutionManager:
    """
    Runs benchmark scripts under a given RunConfiguration.

    One instance is owned by each worker. Running a benchmark blocks the
    worker until the child process exits.
    """

    def __init__(
        self,
        ruby: str = "ruby",
        benchmarks_dir: Path = Path("benchmarks"),
        harness_dir: Path = Path("harness"),
    ):
        """
        Initialize the ExecutionManager.

        Args:
            ruby: The interpreter executable to run benchmarks with
            benchmarks_dir: Directory holding the benchmark scripts
            harness_dir: Directory passed to the interpreter as an include path
        """
        self.ruby = ruby
        self.benchmarks_dir = Path(benchmarks_dir)
        self.harness_dir = Path(harness_dir)

    def build_command(
        self, script_path: Path, config: RunConfiguration, jit_disabled: bool
    ) -> list[str]:
        cmd = [self.ruby]
        if not jit_disabled:
            cmd.extend(config.extra_flags)
        cmd.append(f"-I{self.harness_dir}")
        cmd.append(str(script_path))
        return cmd

    def execute(
        self,
        benchmark_name: str,
        config: RunConfiguration,
        run_time: int,
        jit_disabled: bool,
    ) -> RunResult:
        """
        Run one benchmark and capture its merged output.

        Args:
            benchmark_name: Name of the benchmark in the catalog
            config: The sampled configuration for this run
            run_time: Minimum benchmark run time in seconds (MIN_BENCH_TIME)
            jit_disabled: If True, the sampled flags are not passed

        Returns:
            A RunResult. A non-zero exit is reported in the result, not raised.

        Raises:
            HarnessError: If the script is missing or the interpreter cannot
                be launched.
        """
        script_path = resolve_script_path(self.benchmarks_dir, benchmark_name)
        env = build_env(run_time, config.env_overrides)
        cmd = self.build_command(script_path, config, jit_disabled)
        display_command = format_display_command(cmd, config.env_overrides)

        print(f"pid {os.getpid()} running benchmark {benchmark_name}:", flush=True)
        print(display_command, flush=True)

        try:
            with subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
            ) as proc:
                output, _ = proc.communicate()
        except OSError as e:
            raise HarnessError(f"Could not launch '{self.ruby}' for {benchmark_name}: {e}") from e

        return RunResult(
            output=output or "",
            succeeded=proc.returncode == 0,
            pid=proc.pid,
            returncode=proc.returncode,
            display_command=display_command,
        )

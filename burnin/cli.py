"""
Command-line entry point for the burn-in fuzzer.

Sets up the log directory, checks the interpreter, resolves the benchmark
list and hands over to the Supervisor, which runs until interrupted.
"""

import argparse
import functools
import os
import platform
import shutil
import sys
from datetime import datetime
from pathlib import Path
from textwrap import dedent

import psutil

from burnin.artifacts import count_failure_reports
from burnin.catalog import DEFAULT_CATEGORIES, CatalogError, resolve_benchmark_names
from burnin.execution import ExecutionManager
from burnin.health import StartupError, check_debug_info, get_runtime_version, verify_jit_support
from burnin.metadata import generate_run_metadata
from burnin.supervisor import Supervisor, worker_seeds
from burnin.worker import BurnInWorker


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="burnin: run benchmarks under randomized YJIT settings to find rare crashes."
    )
    parser.add_argument(
        "--logs-path",
        "--logs_path",
        type=Path,
        default=Path("./logs_burn_in"),
        help="Directory where failure reports are stored. (Default: ./logs_burn_in)",
    )
    parser.add_argument(
        "--delete-old-logs",
        "--delete_old_logs",
        action="store_true",
        help="Delete the logs directory if it already exists.",
    )
    parser.add_argument(
        "--num-procs",
        "--num_procs",
        type=int,
        default=psutil.cpu_count(logical=True) or os.cpu_count() or 1,
        help="Number of worker processes to use in total. (Default: logical CPU count)",
    )
    parser.add_argument(
        "--num-long-runs",
        "--num_long_runs",
        type=int,
        default=4,
        help="Number of worker processes doing long (2 hour) runs. (Default: 4)",
    )
    parser.add_argument(
        "--category",
        type=lambda v: [c for c in v.split(",") if c],
        dest="categories",
        default=list(DEFAULT_CATEGORIES),
        help="Comma-separated benchmark categories to run, e.g. headline,other,micro.",
    )
    parser.add_argument(
        "--no-yjit",
        "--no_yjit",
        action="store_true",
        help="Test the plain interpreter, without enabling YJIT.",
    )
    parser.add_argument(
        "--ruby",
        type=str,
        default="ruby",
        help="The Ruby interpreter to test. (Default: ruby)",
    )
    parser.add_argument(
        "--benchmarks-dir",
        type=Path,
        default=Path("benchmarks"),
        help="Directory containing the benchmark scripts. (Default: benchmarks)",
    )
    parser.add_argument(
        "--harness-dir",
        type=Path,
        default=Path("harness"),
        help="Include path for the benchmark harness. (Default: harness)",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        default=Path("benchmarks.yml"),
        help="YAML benchmark catalog. (Default: benchmarks.yml)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base seed for deriving per-worker seeds. Random if omitted.",
    )
    parser.add_argument(
        "--require-debug-info",
        action="store_true",
        help="Abort instead of warning when the interpreter has no debug info.",
    )
    return parser


def prepare_logs_dir(logs_path: Path, delete_old_logs: bool) -> None:
    """Create a fresh logs directory, refusing to reuse an existing one."""
    if logs_path.exists():
        if not delete_old_logs:
            raise StartupError(
                f"Logs directory already exists. Move or delete {logs_path} before running."
            )
        shutil.rmtree(logs_path)
    logs_path.mkdir(parents=True)


def make_worker(
    index: int,
    run_time: int,
    seed: int,
    *,
    args: argparse.Namespace,
    bench_names: list[str],
    runtime_version: str,
) -> BurnInWorker:
    execution_manager = ExecutionManager(
        ruby=args.ruby,
        benchmarks_dir=args.benchmarks_dir,
        harness_dir=args.harness_dir,
    )
    return BurnInWorker(
        worker_id=index,
        bench_names=bench_names,
        execution_manager=execution_manager,
        logs_dir=args.logs_path,
        runtime_version=runtime_version,
        run_time=run_time,
        no_yjit=args.no_yjit,
        seed=seed,
    )


def setup(args: argparse.Namespace) -> tuple[str, list[str]]:
    """
    Run every startup step that can fail before workers are spawned.

    Returns:
        The interpreter version string and the selected benchmark names.

    Raises:
        StartupError: If any step fails.
    """
    if args.num_procs < 1:
        raise StartupError("--num-procs must be at least 1.")
    if args.num_long_runs < 0:
        raise StartupError("--num-long-runs must not be negative.")

    prepare_logs_dir(args.logs_path, args.delete_old_logs)

    runtime_version = get_runtime_version(args.ruby)
    print(runtime_version)
    verify_jit_support(runtime_version)
    check_debug_info(args.ruby, required=args.require_debug_info)

    try:
        bench_names = resolve_benchmark_names(args.catalog, args.categories)
    except CatalogError as e:
        raise StartupError(str(e)) from e
    if not bench_names:
        raise StartupError(f"No benchmarks found in categories: {', '.join(args.categories)}")
    return runtime_version, bench_names


def main() -> None:
    """Parse command-line arguments and run the burn-in."""
    args = build_parser().parse_args()

    try:
        runtime_version, bench_names = setup(args)
    except StartupError as e:
        print(f"[!] {e}", file=sys.stderr)
        sys.exit(1)

    seeds = worker_seeds(args.num_procs, args.seed)
    metadata = generate_run_metadata(args.logs_path, args, runtime_version, bench_names, seeds)

    run_start_time = datetime.now()
    header = f"""
================================================================================
BURN-IN RUN: {metadata["instance_name"]}
================================================================================
- Hostname:          {platform.node()}
- Platform:          {platform.platform()}
- Process ID:        {os.getpid()}
- Ruby Version:      {runtime_version}
- Logs Dir:          {args.logs_path}
- Start Time:        {run_start_time.isoformat()}
- Command:           {" ".join(sys.argv)}
- Benchmarks:        {len(bench_names)} ({", ".join(args.categories)})
- Workers:           {args.num_procs} ({min(args.num_long_runs, args.num_procs)} long)
- YJIT:              {"disabled" if args.no_yjit else "enabled"}
================================================================================
"""
    print(dedent(header), flush=True)

    factory = functools.partial(
        make_worker, args=args, bench_names=bench_names, runtime_version=runtime_version
    )
    supervisor = Supervisor(
        worker_factory=factory,
        num_procs=args.num_procs,
        num_long_runs=args.num_long_runs,
        logs_dir=args.logs_path,
        seeds=seeds,
    )

    termination_reason = "Stopped"
    try:
        supervisor.start()
        supervisor.run()
    except KeyboardInterrupt:
        print("\n[!] Burn-in stopped by user.", file=sys.stderr)
        termination_reason = "KeyboardInterrupt"
    finally:
        supervisor.shutdown()
        duration = datetime.now() - run_start_time
        summary = f"""
================================================================================
BURN-IN SUMMARY
================================================================================
- Termination:       {termination_reason}
- Total Duration:    {duration}
- Failure Reports:   {count_failure_reports(args.logs_path)}
================================================================================
"""
        print(dedent(summary))


if __name__ == "__main__":
    main()

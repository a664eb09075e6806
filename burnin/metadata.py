"""
Run metadata for burn-in sessions.

A run_metadata.json file is written next to the failure reports so that a
log directory found later still says which interpreter, host and settings
produced it.
"""

import argparse
import json
import platform
import random
import shutil
import sys
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

import psutil

METADATA_FILENAME = "run_metadata.json"

ADJECTIVES = [
    "brisk",
    "dogged",
    "fearless",
    "glowing",
    "patient",
    "restless",
    "smouldering",
    "steady",
    "stubborn",
    "tireless",
    "unyielding",
    "watchful",
]

NOUNS = [
    "anvil",
    "bellows",
    "brazier",
    "crucible",
    "ember",
    "forge",
    "furnace",
    "ingot",
    "kiln",
    "smelter",
    "tongs",
    "quench",
]


def generate_instance_name(rng: random.Random | None = None) -> str:
    """Generate a random adjective-noun name for this run."""
    rng = rng or random.Random()
    return f"{rng.choice(ADJECTIVES)}-{rng.choice(NOUNS)}"


def get_hardware_info(logs_dir: Path) -> dict:
    return {
        "cpu_count_logical": psutil.cpu_count(logical=True),
        "cpu_count_physical": psutil.cpu_count(logical=False),
        "total_ram_gb": round(psutil.virtual_memory().total / (1024**3), 2),
        "disk_free_gb": round(shutil.disk_usage(logs_dir).free / (1024**3), 2),
    }


def generate_run_metadata(
    logs_dir: Path,
    args: argparse.Namespace,
    runtime_version: str,
    bench_names: Sequence[str],
    seeds: Sequence[int],
) -> dict:
    """
    Collect run metadata and save it to logs_dir/run_metadata.json.

    Args:
        logs_dir: The run's log directory (must already exist).
        args: Parsed command-line arguments.
        runtime_version: Version string reported by the interpreter.
        bench_names: The benchmarks selected for this run.
        seeds: Per-worker seeds, in worker order.

    Returns:
        Dictionary containing all collected metadata.
    """
    metadata = {
        "run_id": str(uuid.uuid4()),
        "instance_name": generate_instance_name(),
        "start_time": datetime.now(timezone.utc).isoformat(),
        "environment": {
            "hostname": platform.node(),
            "os": platform.platform(),
            "host_python": sys.version,
            "ruby": getattr(args, "ruby", "ruby"),
            "runtime_version": runtime_version,
        },
        "hardware": get_hardware_info(logs_dir),
        "configuration": {
            "args": vars(args),
            "benchmarks": list(bench_names),
            "worker_seeds": list(seeds),
        },
    }

    metadata_path = Path(logs_dir) / METADATA_FILENAME
    with open(metadata_path, "w", encoding="utf-8") as f:
        json.dump(metadata, f, indent=2, default=str)

    return metadata

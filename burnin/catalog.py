"""
Benchmark catalog loading for the burn-in fuzzer.

The catalog is a YAML mapping of benchmark name to metadata. Only the
optional ``category`` key is used here; benchmarks without one belong to
the "other" category.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_CATEGORY = "other"
DEFAULT_CATEGORIES = ("headline", "other")


class CatalogError(Exception):
    """Raised when the benchmark catalog cannot be loaded."""


@dataclass(frozen=True)
class BenchmarkEntry:
    """A single benchmark listed in the catalog."""

    name: str
    category: str = DEFAULT_CATEGORY


def parse_catalog(data: object) -> list[BenchmarkEntry]:
    """Build catalog entries from an already-parsed YAML document."""
    if data is None:
        return []
    if not isinstance(data, dict):
        raise CatalogError(
            f"Benchmark catalog must be a mapping, got {type(data).__name__}"
        )

    entries = []
    for name, metadata in data.items():
        metadata = metadata or {}
        if not isinstance(metadata, dict):
            raise CatalogError(f"Metadata for benchmark '{name}' must be a mapping")
        category = metadata.get("category", DEFAULT_CATEGORY)
        entries.append(BenchmarkEntry(name=str(name), category=str(category)))
    return entries


def load_catalog(catalog_path: Path) -> list[BenchmarkEntry]:
    """
    Load the benchmark catalog from a YAML file.

    Args:
        catalog_path: Path to the catalog file (usually benchmarks.yml).

    Returns:
        The catalog entries in file order.

    Raises:
        CatalogError: If the file is missing, unreadable or malformed.
    """
    try:
        with open(catalog_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise CatalogError(f"Could not read benchmark catalog {catalog_path}: {e}") from e
    except yaml.YAMLError as e:
        raise CatalogError(f"Invalid YAML in benchmark catalog {catalog_path}: {e}") from e
    return parse_catalog(data)


def filter_benchmarks(entries: Iterable[BenchmarkEntry], categories: Iterable[str]) -> list[str]:
    """Return the sorted names of the entries whose category was requested."""
    wanted = set(categories)
    return sorted(entry.name for entry in entries if entry.category in wanted)


def resolve_benchmark_names(catalog_path: Path, categories: Iterable[str]) -> list[str]:
    """Load the catalog and return the benchmark names in the given categories."""
    return filter_benchmarks(load_catalog(catalog_path), categories)

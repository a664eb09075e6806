"""
Randomized runtime configurations for burn-in runs.

Each run gets a fresh RunConfiguration: a set of environment overrides and
a list of YJIT tuning flags. The value tables below define every reachable
configuration, which iter_reachable_configurations() enumerates.
"""

from __future__ import annotations

import itertools
import random
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

# Environment overrides toggled on for half of all runs.
GC_COMPACT_ENV = {"RUBY_GC_AUTO_COMPACT": "1"}
GC_COMPACT_PROBABILITY = 0.5

CALL_THRESHOLDS = (1, 2, 10, 30)
COLD_THRESHOLDS = (1, 2, 5, 10, 500, 50_000)
MEM_SIZES = (1, 2, 3, 4, 5, 10, 64, 128)

# Only one of these is ever passed for a given run.
MEM_SIZE_FLAGS = ("--yjit-mem-size", "--yjit-exec-mem-size")

# Each of these is added independently with probability 0.5, in this order.
OPTIONAL_FLAGS = (
    "--yjit-code-gc",
    "--yjit-perf",
    "--yjit-stats",
    "--yjit-log=/dev/null",
)


@dataclass(frozen=True)
class RunConfiguration:
    """Environment overrides and extra interpreter flags for a single run."""

    env_overrides: Mapping[str, str] = field(default_factory=dict)
    extra_flags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # A read-only copy, so a configuration cannot change after it is drawn.
        object.__setattr__(self, "env_overrides", MappingProxyType(dict(self.env_overrides)))
        object.__setattr__(self, "extra_flags", tuple(self.extra_flags))

    def key(self) -> tuple[tuple[tuple[str, str], ...], tuple[str, ...]]:
        """Return a hashable identity for this configuration."""
        return tuple(sorted(self.env_overrides.items())), self.extra_flags


class ConfigurationSampler:
    """Draws random RunConfigurations from an injected random generator."""

    def __init__(self, rng: random.Random) -> None:
        self.rng = rng

    def sample_env(self) -> dict[str, str]:
        env: dict[str, str] = {}
        if self.rng.random() < GC_COMPACT_PROBABILITY:
            env.update(GC_COMPACT_ENV)
        return env

    def sample_flags(self) -> list[str]:
        """Draw a YJIT flag list. Omitted options contribute nothing."""
        flags = [
            f"--yjit-call-threshold={self.rng.choice(CALL_THRESHOLDS)}",
            f"--yjit-cold-threshold={self.rng.choice(COLD_THRESHOLDS)}",
        ]
        # Both sides get their own size before one side is picked.
        mem_flags = [f"{flag}={self.rng.choice(MEM_SIZES)}" for flag in MEM_SIZE_FLAGS]
        flags.append(self.rng.choice(mem_flags))
        for flag in OPTIONAL_FLAGS:
            choice = self.rng.choice((flag, None))
            if choice is not None:
                flags.append(choice)
        return flags

    def sample(self, jit_enabled: bool) -> RunConfiguration:
        """
        Draw the configuration for one run.

        Args:
            jit_enabled: When False, no tuning flags are produced and the run
                uses the baseline interpreter.
        """
        env = self.sample_env()
        flags = self.sample_flags() if jit_enabled else []
        return RunConfiguration(env_overrides=env, extra_flags=tuple(flags))


def iter_reachable_configurations(jit_enabled: bool) -> Iterator[RunConfiguration]:
    """Yield every configuration the sampler can produce, each exactly once."""
    env_choices = [{}, dict(GC_COMPACT_ENV)]
    if not jit_enabled:
        for env in env_choices:
            yield RunConfiguration(env_overrides=env)
        return

    mem_choices = [f"{flag}={size}" for flag in MEM_SIZE_FLAGS for size in MEM_SIZES]
    optional_choices = itertools.product(*[(flag, None) for flag in OPTIONAL_FLAGS])
    optional_choices = [tuple(f for f in combo if f is not None) for combo in optional_choices]

    for env, call, cold, mem, optional in itertools.product(
        env_choices, CALL_THRESHOLDS, COLD_THRESHOLDS, mem_choices, optional_choices
    ):
        flags = (
            f"--yjit-call-threshold={call}",
            f"--yjit-cold-threshold={cold}",
            mem,
        ) + optional
        yield RunConfiguration(env_overrides=dict(env), extra_flags=flags)

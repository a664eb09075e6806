"""
Startup checks for the burn-in fuzzer.

These run once, before any worker is spawned. A failed check that makes the
burn-in pointless raises StartupError; softer problems only print a warning.
"""

import shutil
import subprocess
import sys
import time
from textwrap import dedent

JIT_MARKER = "+YJIT"
DEBUG_INFO_MARKER = "debug_info"
DEBUG_INFO_WARNING_DELAY = 10


class StartupError(Exception):
    """Raised when the environment cannot support a burn-in run."""


def get_runtime_version(ruby: str) -> str:
    """
    Return the version string of the interpreter with YJIT requested.

    Raises:
        StartupError: If the interpreter cannot be run.
    """
    try:
        result = subprocess.run(
            [ruby, "-v", "--yjit"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise StartupError(f"Could not run interpreter '{ruby}': {e}") from e
    return (result.stdout or result.stderr).strip()


def verify_jit_support(runtime_version: str) -> None:
    """Raise StartupError unless the version string advertises YJIT."""
    if JIT_MARKER not in runtime_version:
        raise StartupError(
            dedent(f"""\
                Ruby version string doesn't include {JIT_MARKER}.
                You may want to run `chruby ruby-yjit`.
                Version string received: {runtime_version!r}""")
        )


def has_debug_info(ruby: str) -> bool:
    """
    Check whether the interpreter binary carries debug info.

    Relies on `file(1)` output, so this only detects it on Linux.
    """
    ruby_path = shutil.which(ruby)
    if ruby_path is None:
        return False
    try:
        result = subprocess.run(
            ["file", "-L", ruby_path],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return DEBUG_INFO_MARKER in result.stdout


def check_debug_info(ruby: str, required: bool = False) -> bool:
    """
    Warn (or fail, if required) when the interpreter lacks debug info.

    Core dumps from a binary without debug info are much less useful, so the
    warning pauses briefly to make sure it is seen.
    """
    if has_debug_info(ruby):
        return True
    message = (
        "could not detect debug info in ruby binary! You may want to rebuild "
        "in dev mode so you can produce useful core dumps!"
    )
    if required:
        raise StartupError(message.capitalize())
    print(f"[!] WARNING: {message}\n", file=sys.stderr)
    time.sleep(DEBUG_INFO_WARNING_DELAY)
    return False

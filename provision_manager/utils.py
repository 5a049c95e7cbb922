# /*
# Copyright 2026 The Provision Manager Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Utility functions for platform detection, command lookup, and kubectl."""

from __future__ import annotations

import platform
import shutil
import subprocess
from pathlib import Path

import sh

from provision_manager.constants import (
    ARCH_ALIASES,
    KUBECTL_TIMEOUT_SECONDS,
    OS_WINDOWS,
    SUPPORTED_OS,
    WINDOWS_EXE_SUFFIX,
)


def detect_os() -> str:
    """Return the host OS in catalog vocabulary (linux, darwin, windows).

    Raises:
        RuntimeError: If the host OS is not supported.
    """
    system = platform.system().lower()
    if system not in SUPPORTED_OS:
        raise RuntimeError(f"Unsupported operating system '{system}'")
    return system


def detect_arch() -> str:
    """Return the host architecture as amd64, arm64 or 386.

    Raises:
        RuntimeError: If the host architecture is not supported.
    """
    machine = platform.machine().lower()
    try:
        return ARCH_ALIASES[machine]
    except KeyError:
        raise RuntimeError(f"Unsupported architecture '{machine}'") from None


def executable_name(name: str, os_name: str) -> str:
    """Append the ``.exe`` suffix when targeting Windows.

    Args:
        name: Bare binary name (e.g. ``kubectl``).
        os_name: Target OS in catalog vocabulary.

    Returns:
        The platform-adjusted file name.
    """
    if os_name == OS_WINDOWS and not name.endswith(WINDOWS_EXE_SUFFIX):
        return name + WINDOWS_EXE_SUFFIX
    return name


def strip_exe_suffix(name: str) -> str:
    """Return the base name of an executable path without any ``.exe`` suffix."""
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    if base.lower().endswith(WINDOWS_EXE_SUFFIX):
        return base[: -len(WINDOWS_EXE_SUFFIX)]
    return base


def find_on_path(file_name: str) -> Path | None:
    """Look up an executable on the search path.

    Args:
        file_name: Platform-adjusted executable name.

    Returns:
        The resolved path, or None if not found.
    """
    found = shutil.which(file_name)
    return Path(found) if found else None


def is_within(path: Path, directory: Path) -> bool:
    """Check whether *path* lives inside *directory*."""
    try:
        path.resolve().relative_to(directory.resolve())
        return True
    except ValueError:
        return False


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        found = sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err
    if not found:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.")


def run_kubectl(
    args: list[str],
    timeout: int = KUBECTL_TIMEOUT_SECONDS,
    stdin: str | None = None,
) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because JSON output parsing and error
    classification (``NotFound``, ``AlreadyExists``) need stdout and stderr
    kept apart.

    Args:
        args: kubectl arguments (e.g. ``["get", "services", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.
        stdin: Optional text piped to kubectl (e.g. a manifest for ``-f -``).

    Returns:
        Tuple of (success, stdout, stderr).
    """
    try:
        result = subprocess.run(
            ["kubectl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            input=stdin,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)

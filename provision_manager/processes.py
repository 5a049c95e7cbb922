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


"""Local helper process supervision: lazy start, restart, and tree-wide kill."""

from __future__ import annotations

import enum
import os
import subprocess
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import psutil

from provision_manager import console, logger
from provision_manager.constants import OS_WINDOWS
from provision_manager.errors import ProcessError
from provision_manager.utils import executable_name, find_on_path, strip_exe_suffix

_TERMINATE_WAIT_SECONDS = 3


@dataclass(frozen=True)
class ProcessRecord:
    """A process seen in one snapshot of the local process table."""

    pid: int
    name: str
    ppid: int | None


class LaunchOutcome(enum.Enum):
    STARTED = "started"
    ALREADY_RUNNING = "already-running"
    FAILED = "failed"


@dataclass(frozen=True)
class LaunchResult:
    """Result of ``ProcessSupervisor.ensure_running``.

    Attributes:
        outcome: Whether a new process was started, one was already running,
            or the launch failed.
        pid: Pid of the started or already running process, if known.
        log_file: Log file the process writes to, when a launch was attempted.
        detail: Human readable explanation, mostly for failures.
    """

    outcome: LaunchOutcome
    pid: int | None = None
    log_file: Path | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is not LaunchOutcome.FAILED


class PsutilProcessTable:
    """Process table backed by psutil."""

    def snapshot(self) -> list[ProcessRecord]:
        records: list[ProcessRecord] = []
        for proc in psutil.process_iter(["pid", "name", "ppid"]):
            info = proc.info
            records.append(ProcessRecord(
                pid=info["pid"],
                name=info.get("name") or "",
                ppid=info.get("ppid"),
            ))
        return records

    def terminate(self, pid: int) -> None:
        try:
            proc = psutil.Process(pid)
            proc.terminate()
        except psutil.Error as exc:
            raise ProcessError(f"failed to terminate process with pid {pid}: {exc}") from exc
        try:
            proc.wait(timeout=_TERMINATE_WAIT_SECONDS)
        except psutil.TimeoutExpired:
            logger.debug("process %d still running %ds after terminate", pid, _TERMINATE_WAIT_SECONDS)
        except psutil.Error:
            pass


def process_forest(
    records: Sequence[ProcessRecord],
) -> tuple[list[ProcessRecord], dict[int, list[ProcessRecord]]]:
    """Split a snapshot into top-level processes and a children index.

    A process is top-level when it has no parent, is its own parent, or its
    parent is not part of the snapshot.
    """
    pids = {r.pid for r in records}
    roots: list[ProcessRecord] = []
    children: dict[int, list[ProcessRecord]] = defaultdict(list)
    for record in records:
        if record.ppid is None or record.ppid == record.pid or record.ppid not in pids:
            roots.append(record)
        else:
            children[record.ppid].append(record)
    return roots, children


def _detach_kwargs() -> dict:
    if os.name == "nt":
        return {
            "creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP,
        }
    return {"start_new_session": True}


class ProcessSupervisor:
    """Start and stop named helper processes on the local host.

    Args:
        logs_dir: Directory receiving ``<name>.log`` for each started process.
        bin_dir: Managed bin directory searched after PATH.
        table: Process table; defaults to psutil.
        launch_grace_seconds: A process that exits within this window counts
            as a failed launch.
        popen: Process factory, ``subprocess.Popen`` by default.
    """

    def __init__(
        self,
        logs_dir: Path,
        bin_dir: Path | None = None,
        table: PsutilProcessTable | None = None,
        launch_grace_seconds: float = 1.0,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.logs_dir = logs_dir
        self.bin_dir = bin_dir
        self.table = table or PsutilProcessTable()
        self.launch_grace_seconds = launch_grace_seconds
        self._popen = popen
        self._launched: dict[int, subprocess.Popen] = {}

    @property
    def launched(self) -> dict[int, subprocess.Popen]:
        """Handles of processes started here that have not been reaped yet, by pid."""
        self._reap()
        return dict(self._launched)

    def find(self, name: str) -> list[ProcessRecord]:
        """Return every process in a fresh snapshot whose executable is *name*."""
        return [
            r for r in self.table.snapshot()
            if r.pid > 0 and strip_exe_suffix(r.name) == name
        ]

    def ensure_running(self, name: str, args: Sequence[str] = (), lazy: bool = True) -> LaunchResult:
        """Launch *name* in the background unless it is already running.

        Args:
            name: Executable name, looked up on PATH and in the bin directory.
            args: Command line arguments.
            lazy: Treat an existing instance as healthy instead of starting another.
                Non-lazy callers should ``kill_tree`` first.

        Returns:
            The launch outcome.
        """
        self._reap()
        if lazy:
            existing = self.find(name)
            if existing:
                logger.info("%s is already running with pid %d", name, existing[0].pid)
                return LaunchResult(LaunchOutcome.ALREADY_RUNNING, pid=existing[0].pid,
                                    detail=f"{name} is already running")

        executable = self._resolve_executable(name)
        if executable is None:
            return LaunchResult(LaunchOutcome.FAILED, detail=f"{name} not found on PATH or in {self.bin_dir}")

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.logs_dir / f"{name}.log"
        try:
            with open(log_file, "wb") as log:
                proc = self._popen(
                    [str(executable), *args],
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    **_detach_kwargs(),
                )
        except OSError as exc:
            return LaunchResult(LaunchOutcome.FAILED, log_file=log_file,
                                detail=f"failed to start {name}: {exc}")

        exit_code = self._wait_for_early_exit(proc)
        if exit_code is None:
            self._launched[proc.pid] = proc
            console.print(f"[green]\u2705 running {name} locally and logging to file: {log_file}[/green]")
            return LaunchResult(LaunchOutcome.STARTED, pid=proc.pid, log_file=log_file)

        if lazy:
            survivors = self.find(name)
            if survivors:
                logger.info("%s exited with code %d; using running instance %d",
                            name, exit_code, survivors[0].pid)
                return LaunchResult(LaunchOutcome.ALREADY_RUNNING, pid=survivors[0].pid,
                                    log_file=log_file, detail=f"{name} is already running")
        return LaunchResult(LaunchOutcome.FAILED, log_file=log_file,
                            detail=f"{name} exited with code {exit_code}, see {log_file}")

    def restart(self, name: str, args: Sequence[str] = ()) -> LaunchResult:
        """Kill any running *name* process and start a fresh one."""
        logger.info("checking if we need to kill a local %s process", name)
        self.kill_tree(name)
        return self.ensure_running(name, args, lazy=False)

    def kill_tree(self, name: str) -> int | None:
        """Terminate the first process named *name* found in the process forest.

        Walks a single snapshot depth-first from the top-level processes,
        visiting each pid at most once. A failed termination is logged and the
        walk carries on.

        Args:
            name: Executable base name; a ``.exe`` suffix is ignored.

        Returns:
            The pid that was terminated, or None when nothing matched.
        """
        self._reap()
        records = self.table.snapshot()
        roots, children = process_forest(records)
        visited: set[int] = set()
        # anything unreachable from a root (parent cycles) is walked afterwards
        for start in [*roots, *records]:
            stack = [start]
            while stack:
                record = stack.pop()
                if record.pid in visited:
                    continue
                visited.add(record.pid)
                if record.pid > 0 and strip_exe_suffix(record.name) == name:
                    logger.info("killing %s process with pid %d", name, record.pid)
                    try:
                        self.table.terminate(record.pid)
                    except ProcessError as exc:
                        logger.warning("%s", exc)
                    else:
                        logger.info("killed %s process with pid %d", name, record.pid)
                        self._reap()
                        return record.pid
                stack.extend(reversed(children.get(record.pid, [])))
        return None

    def _reap(self) -> None:
        for pid, proc in list(self._launched.items()):
            if proc.poll() is not None:
                logger.debug("reaped pid %d with exit code %d", pid, proc.returncode)
                del self._launched[pid]

    def _resolve_executable(self, name: str) -> Path | None:
        file_name = executable_name(name, OS_WINDOWS if os.name == "nt" else "")
        found = find_on_path(file_name)
        if found is not None:
            return found
        if self.bin_dir is not None and (self.bin_dir / file_name).exists():
            return self.bin_dir / file_name
        return None

    def _wait_for_early_exit(self, proc: subprocess.Popen) -> int | None:
        if self.launch_grace_seconds <= 0:
            return proc.poll()
        try:
            return proc.wait(timeout=self.launch_grace_seconds)
        except subprocess.TimeoutExpired:
            return None

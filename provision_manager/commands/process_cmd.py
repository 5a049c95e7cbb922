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


"""Process subcommands (start, restart, kill, tiller)."""

from __future__ import annotations

import typer

from provision_manager import console
from provision_manager.commands import http_client
from provision_manager.config import InstallerConfig, TillerConfig
from provision_manager.errors import ProcessError
from provision_manager.orchestrator import Orchestrator
from provision_manager.processes import LaunchOutcome, LaunchResult, ProcessSupervisor

app = typer.Typer(help="Supervise local helper processes.")


def _supervisor() -> ProcessSupervisor:
    config = InstallerConfig()
    return ProcessSupervisor(
        logs_dir=config.resolved_logs_dir,
        bin_dir=config.resolved_bin_dir,
        launch_grace_seconds=config.launch_grace_seconds,
    )


def _report(name: str, result: LaunchResult) -> None:
    if result.outcome is LaunchOutcome.FAILED:
        raise ProcessError(result.detail)
    if result.outcome is LaunchOutcome.ALREADY_RUNNING:
        console.print(f"[yellow]\u2139\ufe0f  {name} is already running (pid {result.pid})[/yellow]")


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def start(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Executable to run"),
    lazy: bool = typer.Option(True, "--lazy/--no-lazy", help="Reuse an already running instance"),
) -> None:
    """Start a process in the background; extra arguments are passed through."""
    _report(name, _supervisor().ensure_running(name, ctx.args, lazy=lazy))


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def restart(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Executable to run"),
) -> None:
    """Kill any running instance and start a fresh one."""
    _report(name, _supervisor().restart(name, ctx.args))


@app.command()
def kill(name: str = typer.Argument(..., help="Executable name, with or without .exe")) -> None:
    """Terminate the first process with the given name."""
    pid = _supervisor().kill_tree(name)
    if pid is None:
        console.print(f"[yellow]\u2139\ufe0f  No {name} process found[/yellow]")
    else:
        console.print(f"[green]\u2705 Killed {name} (pid {pid})[/green]")


@app.command()
def tiller(
    restart_existing: bool = typer.Option(False, "--restart", help="Restart a running tiller"),
    address: str | None = typer.Option(None, "--address", help="Listen address (TILLER_ADDR)"),
) -> None:
    """Run tiller locally."""
    config = InstallerConfig()
    tiller_cfg = TillerConfig()
    if address is not None:
        tiller_cfg = tiller_cfg.model_copy(update={"address": address})
    with http_client(config) as client:
        orchestrator = Orchestrator.from_config(config, client, tiller=tiller_cfg)
        if restart_existing:
            result = orchestrator.restart_local_tiller()
        else:
            result = orchestrator.start_local_tiller(lazy=True)
    _report("tiller", result)

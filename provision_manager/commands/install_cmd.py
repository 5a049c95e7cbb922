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


"""Install subcommands (tools, requirements, catalog)."""

from __future__ import annotations

from pathlib import Path

import typer

from provision_manager import console
from provision_manager.catalog import ToolCatalog
from provision_manager.commands import http_client
from provision_manager.config import InstallerConfig
from provision_manager.orchestrator import Orchestrator

app = typer.Typer(help="Install tool binaries into the managed bin directory.")


def _config(bin_dir: Path | None) -> InstallerConfig:
    config = InstallerConfig()
    if bin_dir is not None:
        config = config.model_copy(update={"bin_dir": bin_dir})
    return config


@app.command()
def tools(
    names: list[str] = typer.Argument(..., help="Tools to install"),
    bin_dir: Path | None = typer.Option(None, "--bin-dir", help="Managed bin directory"),
) -> None:
    """Install the named tools unless they are already available."""
    config = _config(bin_dir)
    with http_client(config) as client:
        orchestrator = Orchestrator.from_config(config, client)
        for result in orchestrator.installer.ensure_all(names):
            if result.path is not None and not result.installed:
                console.print(f"[green]\u2705 Using {result.path}[/green]")


@app.command()
def requirements(
    provider: str | None = typer.Option(None, "--provider", help="Cluster provider (aws, eks, gke, ...)"),
    extra: list[str] = typer.Option([], "--extra", help="Additional tools to require"),
    bin_dir: Path | None = typer.Option(None, "--bin-dir", help="Managed bin directory"),
) -> None:
    """Install kubectl, helm and whatever the cluster provider needs."""
    config = _config(bin_dir)
    with http_client(config) as client:
        Orchestrator.from_config(config, client).install_requirements(provider, extra)


@app.command()
def catalog() -> None:
    """List the tools that can be installed."""
    tool_catalog = ToolCatalog.default()
    for name in tool_catalog.names():
        definition = tool_catalog.get(name)
        if definition.automated:
            console.print(name)
        else:
            console.print(f"{name} [yellow](manual: {definition.manual_url})[/yellow]")

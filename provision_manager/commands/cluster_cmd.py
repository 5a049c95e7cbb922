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


"""Cluster subcommands (admin, chart)."""

from __future__ import annotations

import typer

from provision_manager.cluster import create_cluster_admin, install_chart
from provision_manager.constants import HELM_BINARY
from provision_manager.utils import require_command

app = typer.Typer(help="One-off cluster setup steps.")


@app.command()
def admin() -> None:
    """Create the cluster-admin role and bind kube-system:default to it."""
    require_command("kubectl")
    create_cluster_admin()


@app.command()
def chart(
    release: str = typer.Argument(..., help="Helm release name"),
    chart_ref: str = typer.Argument(..., metavar="CHART", help="Chart reference"),
    namespace: str = typer.Option("default", "--namespace", "-n", help="Target namespace"),
    version: str | None = typer.Option(None, "--version", help="Chart version"),
    values: list[str] = typer.Option([], "--set", help="key=value override, repeatable"),
) -> None:
    """Install or upgrade a chart, retrying once on failure."""
    require_command(HELM_BINARY)
    overrides: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep:
            raise typer.BadParameter(f"expected key=value, got '{item}'", param_hint="--set")
        overrides[key] = value
    install_chart(release, chart_ref, namespace, values=overrides, version=version)

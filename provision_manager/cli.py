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


"""
cli.py - Command line entry point for provision-manager.

Subcommands:
    install    Install tool binaries (tools, requirements, catalog)
    process    Supervise local helper processes (start, restart, kill, tiller)
    services   Reconcile Service exposure state (url, list, annotate, clean, wait, ...)
    cluster    One-off cluster setup (admin, chart)

Examples:
    # Install kubectl, helm and the EKS tooling
    provision-manager install requirements --provider eks

    # Start tiller locally unless it is already running
    provision-manager process tiller

    # Add a cert-manager issuer to every exposed service in jx
    provision-manager services annotate letsencrypt-prod -n jx

    # Wait up to 5 minutes for the ingress controller to get an address
    provision-manager services wait jxing-nginx-ingress-controller -n kube-system --timeout 300

For detailed usage information, run: provision-manager --help
"""

from __future__ import annotations

import logging
import sys

import typer

from provision_manager import console
from provision_manager.commands import (
    cluster_cmd,
    install_cmd,
    process_cmd,
    services_cmd,
)

app = typer.Typer(
    help="Provision tool binaries, local helper processes, and Service exposure state.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(install_cmd.app, name="install")
app.add_typer(process_cmd.app, name="process")
app.add_typer(services_cmd.app, name="services")
app.add_typer(cluster_cmd.app, name="cluster")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()

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


"""Service subcommands (url, present, list, annotate, clean, wait, link, jenkins-url, expose)."""

from __future__ import annotations

import typer
from rich.table import Table

from provision_manager import console
from provision_manager.commands import http_client
from provision_manager.config import InstallerConfig
from provision_manager.constants import DEFAULT_EXTERNAL_IP_TIMEOUT_SECONDS
from provision_manager.exposure import ServiceExposureReconciler, ServiceURL
from provision_manager.kube import KubectlClient
from provision_manager.orchestrator import Orchestrator

app = typer.Typer(help="Reconcile Service exposure state on the cluster.")

_NAMESPACE = typer.Option("default", "--namespace", "-n", help="Kubernetes namespace")
_CONTEXT = typer.Option(None, "--context", help="kubeconfig context")


def _reconciler(context: str | None) -> ServiceExposureReconciler:
    return ServiceExposureReconciler(KubectlClient(context=context))


def _print_urls(urls: list[ServiceURL]) -> None:
    table = Table("Name", "URL")
    for item in urls:
        table.add_row(item.name, item.url)
    console.print(table)


@app.command()
def url(
    name: str = typer.Argument(..., help="Service name"),
    namespace: str = _NAMESPACE,
    context: str | None = _CONTEXT,
) -> None:
    """Print the external URL of a Service."""
    found = _reconciler(context).find_service_url(namespace, name)
    if not found:
        console.print(f"[yellow]\u26a0\ufe0f  No external URL found for service {name}[/yellow]")
        raise typer.Exit(1)
    typer.echo(found)


@app.command()
def hostname(
    name: str = typer.Argument(..., help="Ingress name"),
    namespace: str = _NAMESPACE,
    context: str | None = _CONTEXT,
) -> None:
    """Print the host of the Ingress with the given name."""
    found = _reconciler(context).find_service_hostname(namespace, name)
    if not found:
        console.print(f"[yellow]\u26a0\ufe0f  No ingress host found for {name}[/yellow]")
        raise typer.Exit(1)
    typer.echo(found)


@app.command()
def present(
    name: str = typer.Argument(..., help="Service name"),
    namespace: str = _NAMESPACE,
    context: str | None = _CONTEXT,
) -> None:
    """Exit non-zero unless the Service exists."""
    if not _reconciler(context).is_service_present(namespace, name):
        console.print(f"[yellow]\u26a0\ufe0f  Service {name} not found in {namespace}[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]\u2705 Service {name} found in {namespace}[/green]")


@app.command("list")
def list_urls(
    namespace: str = _NAMESPACE,
    context: str | None = _CONTEXT,
) -> None:
    """List the exposed Service URLs in a namespace."""
    _print_urls(_reconciler(context).find_service_urls(namespace))


@app.command()
def names(
    namespace: str = _NAMESPACE,
    name_filter: str = typer.Option("", "--filter", help="Only names containing this text"),
    context: str | None = _CONTEXT,
) -> None:
    """List Service names in a namespace."""
    for name in _reconciler(context).get_service_names(namespace, name_filter):
        typer.echo(name)


@app.command()
def annotate(
    issuer: str = typer.Argument(..., help="cert-manager issuer name"),
    namespace: str = _NAMESPACE,
    context: str | None = _CONTEXT,
) -> None:
    """Add the certificate issuer to every TLS-exposed Service."""
    updated = _reconciler(context).annotate_with_issuer(namespace, issuer)
    console.print(f"[green]\u2705 Annotated {len(updated)} service(s) in {namespace}[/green]")


@app.command()
def clean(
    namespace: str = _NAMESPACE,
    context: str | None = _CONTEXT,
) -> None:
    """Remove the certificate issuer and exposed URL from TLS-exposed Services."""
    updated = _reconciler(context).clean_issuer_annotations(namespace)
    console.print(f"[green]\u2705 Cleaned {len(updated)} service(s) in {namespace}[/green]")


@app.command()
def wait(
    name: str = typer.Argument(..., help="Service name"),
    namespace: str = _NAMESPACE,
    timeout: float = typer.Option(DEFAULT_EXTERNAL_IP_TIMEOUT_SECONDS, "--timeout", help="Seconds to wait"),
    context: str | None = _CONTEXT,
) -> None:
    """Wait for a Service to get an external IP or hostname."""
    _reconciler(context).wait_for_external_address(name, namespace, timeout)
    console.print(f"[green]\u2705 Service {name} has an external address[/green]")


@app.command()
def link(
    name: str = typer.Argument(..., help="Service name"),
    target_namespace: str = typer.Argument(..., help="Namespace the Service lives in"),
    url: str = typer.Option(..., "--url", help="External URL to record on the link"),
    namespace: str = _NAMESPACE,
    context: str | None = _CONTEXT,
) -> None:
    """Create an ExternalName Service pointing at a Service in another namespace."""
    if _reconciler(context).create_service_link(namespace, target_namespace, name, url):
        console.print(f"[green]\u2705 Linked {name} in {namespace} to {target_namespace}[/green]")


@app.command("jenkins-url")
def jenkins_url(
    namespaces: list[str] = typer.Argument(..., help="Namespaces to update"),
    user: str | None = typer.Option(None, "--user", envvar="JENKINS_USER", help="Jenkins user"),
    token: str | None = typer.Option(None, "--token", envvar="JENKINS_API_TOKEN", help="Jenkins API token"),
    context: str | None = _CONTEXT,
) -> None:
    """Point each namespace's Jenkins location at its exposed URL."""
    reconciler = _reconciler(context)
    auth = (user, token) if user and token else None
    with http_client(InstallerConfig()) as client:
        updated = reconciler.update_jenkins_url(namespaces, reconciler.jenkins_script_poster(client, auth))
    console.print(f"[green]\u2705 Updated Jenkins in {len(updated)} namespace(s)[/green]")


@app.command()
def expose(
    namespace: str = _NAMESPACE,
    issuer: str | None = typer.Option(None, "--issuer", help="cert-manager issuer to add"),
    wait_for: str | None = typer.Option(None, "--wait-for", help="Service that must get an external address"),
    timeout: float = typer.Option(DEFAULT_EXTERNAL_IP_TIMEOUT_SECONDS, "--timeout", help="Seconds to wait"),
    context: str | None = _CONTEXT,
) -> None:
    """Post-deployment reconciliation: wait, annotate, and list exposed URLs."""
    config = InstallerConfig()
    with http_client(config) as client:
        orchestrator = Orchestrator.from_config(config, client, kube=KubectlClient(context=context))
        urls = orchestrator.expose_post_deploy(namespace, issuer=issuer, wait_for=wait_for, timeout=timeout)
    _print_urls(urls)

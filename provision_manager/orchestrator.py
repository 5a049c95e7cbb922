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


"""Workflows composed from the installer, process supervisor, and reconciler."""

from __future__ import annotations

import shlex
from collections.abc import Iterable, Mapping

import httpx
from rich.panel import Panel

from provision_manager import console, logger
from provision_manager.catalog import ToolCatalog
from provision_manager.config import InstallerConfig, InstallResult, TillerConfig
from provision_manager.constants import (
    BASE_CLUSTER_TOOLS,
    DEFAULT_EXTERNAL_IP_TIMEOUT_SECONDS,
    TILLER_BINARY,
    dep_value,
)
from provision_manager.errors import ProcessError
from provision_manager.exposure import ServiceExposureReconciler, ServiceURL
from provision_manager.hooks import build_default_hooks
from provision_manager.installer import BinaryInstaller
from provision_manager.kube import KubectlClient
from provision_manager.processes import LaunchOutcome, LaunchResult, ProcessSupervisor


def tiller_args(tiller: TillerConfig) -> list[str]:
    """Command line for a local tiller listening on the configured address."""
    args = ["-listen", tiller.address, "-alsologtostderr"]
    if tiller.extra_args:
        args += shlex.split(tiller.extra_args)
    return args


class Orchestrator:
    """Install requirements, run the local tiller, and reconcile exposed Services.

    Args:
        installer: Binary installer for the managed bin directory.
        supervisor: Local process supervisor.
        reconciler: Service exposure reconciler.
        tiller: Local tiller settings.
        providers: Extra tools per cluster provider; defaults to ``dependencies.yaml``.
    """

    def __init__(
        self,
        installer: BinaryInstaller,
        supervisor: ProcessSupervisor,
        reconciler: ServiceExposureReconciler,
        tiller: TillerConfig | None = None,
        providers: Mapping[str, list[str]] | None = None,
    ) -> None:
        self.installer = installer
        self.supervisor = supervisor
        self.reconciler = reconciler
        self.tiller = tiller or TillerConfig()
        self.providers = dict(providers if providers is not None else dep_value("providers", default={}))

    @classmethod
    def from_config(
        cls,
        config: InstallerConfig,
        client: httpx.Client,
        kube: KubectlClient | None = None,
        tiller: TillerConfig | None = None,
        catalog: ToolCatalog | None = None,
    ) -> Orchestrator:
        """Wire up every component from configuration, including post-install hooks."""
        installer = BinaryInstaller.from_config(config, client, catalog=catalog)
        supervisor = ProcessSupervisor(
            logs_dir=config.resolved_logs_dir,
            bin_dir=config.resolved_bin_dir,
            launch_grace_seconds=config.launch_grace_seconds,
        )
        orchestrator = cls(installer, supervisor, ServiceExposureReconciler(kube), tiller=tiller)
        installer.hooks.update(build_default_hooks(lambda: orchestrator.start_local_tiller(lazy=True)))
        return orchestrator

    # =========================================================================
    # Tool requirements
    # =========================================================================

    def required_tools(self, provider: str | None = None, extra: Iterable[str] = ()) -> list[str]:
        """List the tools a provider needs, base tools first, without duplicates.

        Raises:
            ValueError: If *provider* is not known.
        """
        names = list(BASE_CLUSTER_TOOLS)
        if provider:
            if provider not in self.providers:
                known = ", ".join(sorted(self.providers))
                raise ValueError(f"unknown cluster provider '{provider}', expected one of: {known}")
            names += self.providers[provider]
        names += list(extra)
        return list(dict.fromkeys(names))

    def install_requirements(self, provider: str | None = None, extra: Iterable[str] = ()) -> list[InstallResult]:
        """Install whichever required tools are missing."""
        missing = self.installer.missing(self.required_tools(provider, extra))
        if not missing:
            console.print("[green]\u2705 All required tools are installed[/green]")
            return []
        logger.info("installing missing dependencies: %s", ", ".join(missing))
        return self.installer.ensure_all(missing)

    # =========================================================================
    # Local tiller
    # =========================================================================

    def start_local_tiller(self, lazy: bool = True) -> LaunchResult:
        """Start tiller locally unless it is already running.

        Raises:
            ProcessError: If tiller could not be started.
        """
        result = self.supervisor.ensure_running(TILLER_BINARY, tiller_args(self.tiller), lazy=lazy)
        return _checked(result)

    def restart_local_tiller(self) -> LaunchResult:
        """Kill any local tiller and start a fresh one.

        Raises:
            ProcessError: If tiller could not be started.
        """
        result = self.supervisor.restart(TILLER_BINARY, tiller_args(self.tiller))
        return _checked(result)

    # =========================================================================
    # Post-deployment exposure
    # =========================================================================

    def expose_post_deploy(
        self,
        namespace: str,
        issuer: str | None = None,
        wait_for: str | None = None,
        timeout: float = DEFAULT_EXTERNAL_IP_TIMEOUT_SECONDS,
    ) -> list[ServiceURL]:
        """Reconcile exposure state after a deployment.

        Args:
            namespace: Namespace of the deployed Services.
            issuer: Certificate issuer to add to TLS-exposed Services.
            wait_for: Service that must get an external address first.
            timeout: Bound for the external address wait, in seconds.

        Returns:
            The exposed Service URLs in *namespace*.
        """
        console.print(Panel.fit(f"Reconciling exposed services in {namespace}", style="bold blue"))
        if wait_for:
            self.reconciler.wait_for_external_address(wait_for, namespace, timeout)
        if issuer:
            updated = self.reconciler.annotate_with_issuer(namespace, issuer)
            if updated:
                console.print(f"[green]\u2705 Added issuer {issuer} to: {', '.join(updated)}[/green]")
        return self.reconciler.find_service_urls(namespace)


def _checked(result: LaunchResult) -> LaunchResult:
    if result.outcome is LaunchOutcome.FAILED:
        raise ProcessError(result.detail)
    return result

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


"""Cluster setup steps: cluster-admin RBAC and retried chart installation."""

from __future__ import annotations

import tempfile
from collections.abc import Mapping
from pathlib import Path

import sh
import yaml
from rich.panel import Panel
from tenacity import retry, stop_after_attempt, wait_fixed

from provision_manager import console
from provision_manager.constants import (
    ALREADY_EXISTS_MARKER,
    CHART_INSTALL_MAX_RETRIES,
    CHART_INSTALL_RETRY_WAIT_SECONDS,
    CLUSTER_ADMIN_BINDING,
    CLUSTER_ADMIN_ROLE,
    CLUSTER_ADMIN_SERVICE_ACCOUNT,
    HELM_BINARY,
)
from provision_manager.errors import ReconcileError
from provision_manager.utils import run_kubectl


def cluster_admin_role() -> dict:
    """ClusterRole manifest granting every verb on every resource."""
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRole",
        "metadata": {
            "name": CLUSTER_ADMIN_ROLE,
            "annotations": {"rbac.authorization.kubernetes.io/autoupdate": "true"},
        },
        "rules": [
            {"apiGroups": ["*"], "resources": ["*"], "verbs": ["*"]},
            {"nonResourceURLs": ["*"], "verbs": ["*"]},
        ],
    }


def _create(args: list[str], what: str) -> bool:
    ok, _, stderr = run_kubectl(args)
    if ok:
        console.print(f"[green]\u2705 Created {what}[/green]")
        return True
    if ALREADY_EXISTS_MARKER in stderr:
        console.print(f"[green]\u2705 {what} already exists[/green]")
        return False
    raise ReconcileError(f"failed to create {what}: {stderr.strip()}")


def create_cluster_admin() -> None:
    """Bind the kube-system default service account to the cluster-admin role.

    Also creates the ``cluster-admin`` ClusterRole for clusters that ship
    without one. Existing objects are left as they are.

    Raises:
        ReconcileError: If kubectl fails for any reason other than AlreadyExists.
    """
    console.print(Panel.fit("Creating cluster admin role", style="bold blue"))
    _create([
        "create", "clusterrolebinding", CLUSTER_ADMIN_BINDING,
        "--clusterrole", CLUSTER_ADMIN_ROLE,
        "--serviceaccount", CLUSTER_ADMIN_SERVICE_ACCOUNT,
    ], f"clusterrolebinding {CLUSTER_ADMIN_BINDING}")

    tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".yaml")
    try:
        tmp.write(yaml.dump(cluster_admin_role(), default_flow_style=False).encode())
        tmp.flush()
        tmp.close()
        _create(["create", "-f", tmp.name], f"clusterrole {CLUSTER_ADMIN_ROLE}")
    finally:
        Path(tmp.name).unlink(missing_ok=True)


@retry(
    stop=stop_after_attempt(CHART_INSTALL_MAX_RETRIES),
    wait=wait_fixed(CHART_INSTALL_RETRY_WAIT_SECONDS),
    reraise=True,
)
def _helm_upgrade_install(args: list[str]) -> None:
    sh.Command(HELM_BINARY)(*args)


def install_chart(
    release: str,
    chart: str,
    namespace: str,
    values: Mapping[str, str] | None = None,
    version: str | None = None,
) -> None:
    """Install or upgrade a Helm chart release.

    Args:
        release: Helm release name.
        chart: Chart reference (``repo/name``, path or URL).
        namespace: Target namespace, created if missing.
        values: ``--set`` overrides.
        version: Optional chart version.

    Raises:
        sh.ErrorReturnCode: If helm still fails after the retries.
    """
    console.print(Panel.fit(f"Installing chart {chart} as {release}", style="bold blue"))
    args = ["upgrade", "--install", release, chart, "--namespace", namespace, "--create-namespace"]
    if version:
        args += ["--version", version]
    for key, value in (values or {}).items():
        args += ["--set", f"{key}={value}"]
    _helm_upgrade_install(args)
    console.print(f"[green]\u2705 Chart {chart} installed as {release}[/green]")

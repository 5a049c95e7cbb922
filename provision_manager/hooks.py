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


"""Post-install hooks run against freshly installed binaries."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import sh

from provision_manager import console, logger
from provision_manager.constants import (
    HELM_BINARY,
    HELM_SECRETS_PLUGIN,
    HELM_SECRETS_PLUGIN_URL,
)
from provision_manager.installer import PostInstallHook


def install_helm_secrets_plugin(helm_binary: Path, client_only: bool = True) -> None:
    """(Re)install the helm secrets plugin with the given helm binary.

    Args:
        helm_binary: Path to the helm executable to register the plugin with.
        client_only: Initialise helm client-side first (helm 2 only).

    Raises:
        sh.ErrorReturnCode: If the plugin installation fails.
    """
    helm = sh.Command(str(helm_binary))
    if client_only:
        try:
            helm("init", "--client-only")
        except sh.ErrorReturnCode as err:
            logger.warning("Failed to initialize helm: %s", err.stderr.decode(errors="replace").strip())
    try:
        helm("plugin", "remove", HELM_SECRETS_PLUGIN)
    except sh.ErrorReturnCode:
        logger.debug("helm %s plugin was not installed", HELM_SECRETS_PLUGIN)
    helm("plugin", "install", HELM_SECRETS_PLUGIN_URL)
    console.print(f"[green]\u2705 helm {HELM_SECRETS_PLUGIN} plugin installed for {helm_binary}[/green]")


def build_default_hooks(start_tiller: Callable[[], object]) -> dict[str, PostInstallHook]:
    """Return the hooks referenced by the catalog's ``post_install`` names.

    Args:
        start_tiller: Starts the local tiller if it is not already running.
    """

    def _local_tiller(tiller_path: Path) -> None:
        start_tiller()
        helm_path = tiller_path.with_name(HELM_BINARY + tiller_path.suffix)
        install_helm_secrets_plugin(helm_path, client_only=True)

    return {
        "helm_secrets_plugin": lambda path: install_helm_secrets_plugin(path, client_only=True),
        "helm3_secrets_plugin": lambda path: install_helm_secrets_plugin(path, client_only=False),
        "local_tiller": _local_tiller,
    }

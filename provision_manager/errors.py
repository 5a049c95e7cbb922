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


"""Exception hierarchy for provisioning and reconciliation failures."""

from __future__ import annotations


class ProvisionError(Exception):
    """Base exception for all provision_manager errors."""


class ResolutionError(ProvisionError):
    """Raised when the version of a tool cannot be determined."""


class FetchError(ProvisionError):
    """Raised when a download fails or is truncated."""


class ExtractError(ProvisionError):
    """Raised for corrupt archives or missing archive members."""


class InstallError(ProvisionError):
    """Raised when installing a tool fails at a given stage.

    Args:
        tool: Name of the tool being installed.
        stage: One of ``resolve``, ``fetch``, ``extract``, ``place`` or ``hook``.
        cause: The underlying exception.
    """

    def __init__(self, tool: str, stage: str, cause: BaseException) -> None:
        super().__init__(f"failed to install {tool} ({stage}): {cause}")
        self.tool = tool
        self.stage = stage
        self.cause = cause


class ProcessError(ProvisionError):
    """Raised when a local process cannot be started or terminated."""


class ReconcileError(ProvisionError):
    """Raised when a Kubernetes API call fails."""


class ReadinessTimeout(ProvisionError):
    """Raised when a Service gets no external address within the timeout.

    Args:
        service: Name of the Service that was watched.
        namespace: Namespace of the Service.
        timeout: The bound in seconds that elapsed.
    """

    def __init__(self, service: str, namespace: str, timeout: float) -> None:
        super().__init__(
            f"service {service} in namespace {namespace} never became ready after {timeout:g}s"
        )
        self.service = service
        self.namespace = namespace
        self.timeout = timeout

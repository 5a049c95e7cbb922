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


"""Constants, tool catalog loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_dependencies() -> dict:
    """Load tool definitions from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = Path(__file__).resolve().parent / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Local filesystem layout --
DEFAULT_HOME_DIR = Path.home() / ".provision-manager"
BIN_DIR_NAME = "bin"
LOGS_DIR_NAME = "logs"
LOCK_FILE_NAME = "provision.lock"
BINARY_FILE_MODE = 0o755
TMP_SUFFIX = ".tmp"
WINDOWS_EXE_SUFFIX = ".exe"

# -- Platforms --
OS_LINUX = "linux"
OS_DARWIN = "darwin"
OS_WINDOWS = "windows"
SUPPORTED_OS = (OS_LINUX, OS_DARWIN, OS_WINDOWS)
ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
}

# -- Archive kinds --
ARCHIVE_NONE = "none"
ARCHIVE_ZIP = "zip"
ARCHIVE_TAR_GZ = "tar.gz"
ARCHIVE_KINDS = (ARCHIVE_NONE, ARCHIVE_ZIP, ARCHIVE_TAR_GZ)

# -- Version lookup --
GITHUB_API_URL = "https://api.github.com"
DEFAULT_HTTP_TIMEOUT_SECONDS = 60.0
DOWNLOAD_CHUNK_SIZE = 64 * 1024
SEMVER_PATTERN = r"^\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"

# -- Process supervision --
TILLER_BINARY = "tiller"
DEFAULT_TILLER_ADDRESS = ":44134"
DEFAULT_LAUNCH_GRACE_SECONDS = 1.0

# -- Helm --
HELM_BINARY = "helm"
HELM_SECRETS_PLUGIN = "secrets"
HELM_SECRETS_PLUGIN_URL = "https://github.com/futuresimple/helm-secrets"
CHART_INSTALL_MAX_RETRIES = 2
CHART_INSTALL_RETRY_WAIT_SECONDS = 1

# -- Kubernetes annotation keys --
EXPOSE_ANNOTATION = "fabric8.io/expose"
EXPOSE_URL_ANNOTATION = "fabric8.io/exposeUrl"
EXPOSE_GENERATED_BY_ANNOTATION = "fabric8.io/generated-by"
LINK_GENERATOR = "provision-manager"
SKIP_TLS_ANNOTATION = "jenkins-x.io/skip.tls"
EXPOSE_INGRESS_ANNOTATION = "fabric8.io/ingress.annotations"
CERT_MANAGER_ANNOTATION = "certmanager.k8s.io/issuer"

# -- Kubernetes --
KUBECTL_TIMEOUT_SECONDS = 30
ALREADY_EXISTS_MARKER = "AlreadyExists"
NOT_FOUND_MARKER = "NotFound"
CLUSTER_ADMIN_ROLE = "cluster-admin"
CLUSTER_ADMIN_BINDING = "kube-system-cluster-admin"
CLUSTER_ADMIN_SERVICE_ACCOUNT = "kube-system:default"
DEFAULT_EXTERNAL_IP_TIMEOUT_SECONDS = 300
WATCH_STOP_TIMEOUT_SECONDS = 5

# -- CI server --
JENKINS_SERVICE_NAME = "jenkins"
JENKINS_SCRIPT_PATH = "/scriptText"
JENKINS_LOCATION_SCRIPT = """
// imports
import jenkins.model.Jenkins
import jenkins.model.JenkinsLocationConfiguration

// parameters
def jenkinsParameters = [
  url:    '{url}/'
]

// get Jenkins location configuration
def jenkinsLocationConfiguration = JenkinsLocationConfiguration.get()

// set Jenkins URL
jenkinsLocationConfiguration.setUrl(jenkinsParameters.url)

// save current Jenkins state to disk
jenkinsLocationConfiguration.save()
"""

# -- Cluster tools --
BASE_CLUSTER_TOOLS = ("kubectl", "helm")

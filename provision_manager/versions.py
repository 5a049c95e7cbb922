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


"""Version lookup for catalog tools: pinned, GitHub latest release, or stable.txt."""

from __future__ import annotations

import re

import httpx

from provision_manager import logger
from provision_manager.catalog import ToolDefinition
from provision_manager.constants import GITHUB_API_URL, SEMVER_PATTERN
from provision_manager.errors import ResolutionError

_SEMVER_RE = re.compile(SEMVER_PATTERN)


def parse_semver(raw: str) -> str:
    """Validate a semantic version, dropping a leading ``v``.

    Args:
        raw: Version text such as ``v1.12.0`` or ``2.11.0-rc.2``.

    Returns:
        The version without the ``v`` prefix.

    Raises:
        ResolutionError: If the text is empty or not a semantic version.
    """
    version = raw.strip()
    if version.startswith("v"):
        version = version[1:]
    if not version:
        raise ResolutionError("empty version string")
    if not _SEMVER_RE.match(version):
        raise ResolutionError(f"'{raw.strip()}' is not a semantic version")
    return version


class VersionResolver:
    """Resolve the version to install for a tool definition.

    Every call performs a fresh lookup; nothing is cached between calls.

    Args:
        client: HTTP client used for release index and stable endpoint calls.
        github_token: Optional token for the GitHub releases API.
        github_api_url: Base URL of the GitHub API.
    """

    def __init__(
        self,
        client: httpx.Client,
        github_token: str | None = None,
        github_api_url: str = GITHUB_API_URL,
    ) -> None:
        self._client = client
        self._github_token = github_token
        self._github_api_url = github_api_url.rstrip("/")

    def resolve(self, tool: ToolDefinition) -> str:
        """Return the version string for *tool*.

        Strategies in priority order: pinned version, latest GitHub release,
        plain-text stable endpoint.

        Raises:
            ResolutionError: If the lookup fails or yields nothing usable.
        """
        if tool.version:
            logger.info("Using pinned %s version %s", tool.name, tool.version)
            return tool.version
        if tool.github_repo:
            return self.latest_github_release(tool.github_repo, strip_v=tool.strip_v)
        if tool.stable_url:
            return self.stable_version(tool.stable_url)
        raise ResolutionError(f"no version source configured for {tool.name}")

    def latest_github_release(self, repo: str, strip_v: bool = True) -> str:
        """Return the tag of the latest GitHub release of *repo*.

        Args:
            repo: Repository in ``owner/repo`` form.
            strip_v: Drop the ``v`` prefix and require a semantic version.

        Raises:
            ResolutionError: If the request fails or the tag is missing.
        """
        url = f"{self._github_api_url}/repos/{repo}/releases/latest"
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self._github_token:
            headers["Authorization"] = f"Bearer {self._github_token}"
        try:
            response = self._client.get(url, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise ResolutionError(f"unable to get latest version for github.com/{repo}: {exc}") from exc
        except ValueError as exc:
            raise ResolutionError(f"unparsable release payload for github.com/{repo}") from exc

        tag = payload.get("tag_name") if isinstance(payload, dict) else None
        if not tag or not str(tag).strip():
            raise ResolutionError(f"no release tag found for github.com/{repo}")
        tag = str(tag).strip()
        version = parse_semver(tag) if strip_v else tag
        logger.info("Latest release of %s is %s", repo, version)
        return version

    def stable_version(self, url: str) -> str:
        """Return the version published as plain text at *url*.

        Raises:
            ResolutionError: If the request fails or the body is not a version.
        """
        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ResolutionError(f"cannot get url {url}: {exc}") from exc
        version = parse_semver(response.text)
        logger.info("Stable version from %s is %s", url, version)
        return version

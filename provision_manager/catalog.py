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


"""Tool definitions loaded from dependencies.yaml."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from provision_manager.config import ToolSpec
from provision_manager.constants import ARCHIVE_KINDS, ARCHIVE_NONE, DEPENDENCIES
from provision_manager.utils import executable_name


class ToolDefinition(BaseModel):
    """One catalog entry describing how to fetch and install a tool.

    Attributes:
        name: Tool identity.
        url: Download URL template.
        url_overrides: Per-OS replacement URL templates.
        archive: Archive kind of the download.
        archive_overrides: Per-OS archive kind.
        members: Archive member name to installed file name.
        os_names: Per-OS vendor spelling used in the URL.
        arch_names: Per-arch vendor spelling used in the URL.
        version: Pinned version; wins over every other strategy.
        github_repo: ``owner/repo`` whose latest release gives the version.
        strip_v: Whether to drop the leading ``v`` of the release tag.
        stable_url: Endpoint returning the current version as plain text.
        post_install: Name of the hook to run after installation.
        manual_url: Set for tools that cannot be installed automatically.
    """

    name: str
    url: str = ""
    url_overrides: dict[str, str] = Field(default_factory=dict)
    archive: str = ARCHIVE_NONE
    archive_overrides: dict[str, str] = Field(default_factory=dict)
    members: dict[str, str] = Field(default_factory=dict)
    os_names: dict[str, str] = Field(default_factory=dict)
    arch_names: dict[str, str] = Field(default_factory=dict)
    version: str | None = None
    github_repo: str | None = None
    strip_v: bool = True
    stable_url: str | None = None
    post_install: str | None = None
    manual_url: str | None = None

    @field_validator("archive")
    @classmethod
    def _check_archive(cls, value: str) -> str:
        if value not in ARCHIVE_KINDS:
            raise ValueError(f"archive must be one of {ARCHIVE_KINDS}, got '{value}'")
        return value

    @field_validator("archive_overrides")
    @classmethod
    def _check_archive_overrides(cls, value: dict[str, str]) -> dict[str, str]:
        for kind in value.values():
            if kind not in ARCHIVE_KINDS:
                raise ValueError(f"archive must be one of {ARCHIVE_KINDS}, got '{kind}'")
        return value

    @property
    def automated(self) -> bool:
        return self.manual_url is None

    def archive_for(self, os_name: str) -> str:
        return self.archive_overrides.get(os_name, self.archive)

    def to_spec(self, version: str, os_name: str, arch: str) -> ToolSpec:
        """Build the immutable spec for one install attempt.

        Args:
            version: Resolved version string.
            os_name: Target OS in catalog vocabulary.
            arch: Target architecture.

        Returns:
            A ToolSpec with vendor naming and member names applied.
        """
        archive = self.archive_for(os_name)
        members = self.members or {self.name: self.name}
        if archive == ARCHIVE_NONE:
            pairs = ((self.name, executable_name(self.name, os_name)),)
        else:
            pairs = tuple(
                (executable_name(member, os_name), executable_name(target, os_name))
                for member, target in members.items()
            )
        return ToolSpec(
            name=self.name,
            os=os_name,
            arch=arch,
            version=version,
            url_template=self.url_overrides.get(os_name, self.url),
            archive=archive,
            members=pairs,
            vendor_os=self.os_names.get(os_name, os_name),
            vendor_arch=self.arch_names.get(arch, arch),
        )


class ToolCatalog:
    """Lookup table of tool definitions."""

    def __init__(self, definitions: dict[str, ToolDefinition]) -> None:
        self._definitions = definitions

    @classmethod
    def from_dict(cls, data: dict) -> ToolCatalog:
        tools = data.get("tools") or {}
        return cls({
            name: ToolDefinition(name=name, **(entry or {}))
            for name, entry in tools.items()
        })

    @classmethod
    def default(cls) -> ToolCatalog:
        return cls.from_dict(DEPENDENCIES)

    def __contains__(self, name: str) -> bool:
        return name in self._definitions

    def names(self) -> list[str]:
        return sorted(self._definitions)

    def get(self, name: str) -> ToolDefinition:
        """Return the definition for *name*.

        Raises:
            KeyError: If the tool is not in the catalog.
        """
        try:
            return self._definitions[name]
        except KeyError:
            raise KeyError(f"unknown dependency to install {name}") from None

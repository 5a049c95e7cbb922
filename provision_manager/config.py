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


"""Configuration classes and per-attempt install models."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from provision_manager.constants import (
    BIN_DIR_NAME,
    DEFAULT_HOME_DIR,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_LAUNCH_GRACE_SECONDS,
    DEFAULT_TILLER_ADDRESS,
    LOCK_FILE_NAME,
    LOGS_DIR_NAME,
)


# ============================================================================
# Configuration classes
# ============================================================================

class InstallerConfig(BaseSettings):
    """Installer configuration, auto-loaded from PROVISION_* env vars.

    Attributes:
        home: Root directory for everything this tool writes locally.
        bin_dir: Managed bin directory, defaults to ``<home>/bin``.
        logs_dir: Directory for supervised process logs, defaults to ``<home>/logs``.
        lock_file: Host-wide install lock, defaults to ``<home>/provision.lock``.
        http_timeout: Timeout in seconds for version lookups and downloads.
        github_token: Optional token sent to the GitHub releases API.
        target_os: OS override (linux, darwin, windows), or None to detect.
        target_arch: Architecture override (amd64, arm64, 386), or None to detect.
        launch_grace_seconds: How long a freshly started process must survive.
    """

    model_config = SettingsConfigDict(env_prefix="PROVISION_", extra="ignore")

    home: Path = DEFAULT_HOME_DIR
    bin_dir: Path | None = None
    logs_dir: Path | None = None
    lock_file: Path | None = None
    http_timeout: float = Field(default=DEFAULT_HTTP_TIMEOUT_SECONDS, gt=0)
    github_token: str | None = None
    target_os: str | None = Field(default=None, pattern=r"^(linux|darwin|windows)$")
    target_arch: str | None = Field(default=None, pattern=r"^(amd64|arm64|386)$")
    launch_grace_seconds: float = Field(default=DEFAULT_LAUNCH_GRACE_SECONDS, ge=0)

    @property
    def resolved_bin_dir(self) -> Path:
        return self.bin_dir or self.home / BIN_DIR_NAME

    @property
    def resolved_logs_dir(self) -> Path:
        return self.logs_dir or self.home / LOGS_DIR_NAME

    @property
    def resolved_lock_file(self) -> Path:
        return self.lock_file or self.home / LOCK_FILE_NAME


class TillerConfig(BaseSettings):
    """Local tiller settings, read from TILLER_ADDR and TILLER_ARGS.

    Attributes:
        address: Listen address passed to ``tiller -listen``.
        extra_args: Additional arguments appended to the tiller command line.
    """

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    address: str = Field(default=DEFAULT_TILLER_ADDRESS, validation_alias="TILLER_ADDR")
    extra_args: str = Field(default="", validation_alias="TILLER_ARGS")


# ============================================================================
# Install models
# ============================================================================

@dataclass(frozen=True)
class ToolSpec:
    """Everything needed to download one tool for one platform.

    Attributes:
        name: Tool identity as listed in the catalog.
        os: Target OS in catalog vocabulary (linux, darwin, windows).
        arch: Target architecture (amd64, arm64, 386).
        version: Resolved version string or opaque tag.
        url_template: Download URL with ``{version}``, ``{os}``, ``{arch}``,
            ``{exe}`` and ``{ext}`` placeholders.
        archive: Archive kind: ``none``, ``zip`` or ``tar.gz``.
        members: Pairs of (archive member file name, installed file name).
        vendor_os: OS spelling the upstream vendor uses in its URLs.
        vendor_arch: Architecture spelling the upstream vendor uses.
    """

    name: str
    os: str
    arch: str
    version: str
    url_template: str
    archive: str
    members: tuple[tuple[str, str], ...]
    vendor_os: str
    vendor_arch: str

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self.os == "windows" else ""

    @property
    def url(self) -> str:
        return self.url_template.format(
            version=self.version,
            os=self.vendor_os,
            arch=self.vendor_arch,
            exe=self.exe_suffix,
            ext=self.archive,
        )


@dataclass(frozen=True)
class InstallTarget:
    """Final location of an installed binary.

    Attributes:
        bin_dir: The managed bin directory.
        file_name: Platform-adjusted file name (``.exe`` suffix on Windows).
    """

    bin_dir: Path
    file_name: str

    @property
    def path(self) -> Path:
        return self.bin_dir / self.file_name


@dataclass(frozen=True)
class InstallResult:
    """Outcome of ``ensure_installed``.

    Attributes:
        path: Where the binary lives (search path hit or managed bin directory).
        installed: True when this call downloaded the binary.
    """

    path: Path | None
    installed: bool

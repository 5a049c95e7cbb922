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


"""Binary installation into the managed bin directory."""

from __future__ import annotations

import os
import shutil
import uuid
from collections.abc import Callable, Iterable
from pathlib import Path

import httpx
from rich.panel import Panel

from provision_manager import console, logger
from provision_manager.catalog import ToolCatalog, ToolDefinition
from provision_manager.config import InstallerConfig, InstallResult, InstallTarget, ToolSpec
from provision_manager.constants import ARCHIVE_NONE, BINARY_FILE_MODE
from provision_manager.errors import ExtractError, FetchError, InstallError, ResolutionError
from provision_manager.fetch import ArchiveFetcher
from provision_manager.locking import install_lock
from provision_manager.utils import (
    detect_arch,
    detect_os,
    executable_name,
    find_on_path,
    is_within,
)
from provision_manager.versions import VersionResolver

PostInstallHook = Callable[[Path], None]


class BinaryInstaller:
    """Install catalog tools into a single managed bin directory.

    Args:
        bin_dir: The managed bin directory.
        lock_file: Host-wide lock held while a download is placed.
        catalog: Tool definitions.
        resolver: Version resolver.
        fetcher: Downloader and archive extractor.
        os_name: Target OS in catalog vocabulary.
        arch: Target architecture.
        hooks: Post-install hooks keyed by the catalog ``post_install`` name.
    """

    def __init__(
        self,
        bin_dir: Path,
        lock_file: Path,
        catalog: ToolCatalog,
        resolver: VersionResolver,
        fetcher: ArchiveFetcher,
        os_name: str,
        arch: str,
        hooks: dict[str, PostInstallHook] | None = None,
    ) -> None:
        self.bin_dir = bin_dir
        self.lock_file = lock_file
        self.catalog = catalog
        self.resolver = resolver
        self.fetcher = fetcher
        self.os_name = os_name
        self.arch = arch
        self.hooks: dict[str, PostInstallHook] = dict(hooks or {})

    @classmethod
    def from_config(
        cls,
        config: InstallerConfig,
        client: httpx.Client,
        catalog: ToolCatalog | None = None,
        hooks: dict[str, PostInstallHook] | None = None,
    ) -> BinaryInstaller:
        """Build an installer wired to the configured directories and platform."""
        return cls(
            bin_dir=config.resolved_bin_dir,
            lock_file=config.resolved_lock_file,
            catalog=catalog or ToolCatalog.default(),
            resolver=VersionResolver(client, github_token=config.github_token),
            fetcher=ArchiveFetcher(client),
            os_name=config.target_os or detect_os(),
            arch=config.target_arch or detect_arch(),
            hooks=hooks,
        )

    def target_for(self, name: str) -> InstallTarget:
        return InstallTarget(bin_dir=self.bin_dir, file_name=executable_name(name, self.os_name))

    def find_existing(self, name: str, quiet: bool = False) -> Path | None:
        """Return where *name* is already available, or None if it must be installed.

        Args:
            name: Tool identity.
            quiet: Suppress the PATH warnings.
        """
        target = self.target_for(name)
        on_path = find_on_path(target.file_name)
        if on_path is not None:
            if not quiet and not is_within(on_path, self.bin_dir):
                console.print(
                    f"[yellow]\u26a0\ufe0f  {target.file_name} is already available on your PATH at "
                    f"{on_path}[/yellow]"
                )
            return on_path
        if target.path.exists():
            if not quiet:
                console.print(f"[yellow]\u26a0\ufe0f  Please add {self.bin_dir} to your PATH[/yellow]")
            return target.path
        return None

    def missing(self, names: Iterable[str]) -> list[str]:
        """Return the tools from *names* that are neither on PATH nor in the bin directory."""
        result: list[str] = []
        for name in names:
            if name not in result and self.find_existing(name, quiet=True) is None:
                logger.info("%s not found", name)
                result.append(name)
        return result

    def ensure_all(self, names: Iterable[str]) -> list[InstallResult]:
        """Install every tool in *names*, in order."""
        return [self.ensure_installed(name) for name in names]

    def ensure_installed(self, name: str) -> InstallResult:
        """Make sure *name* is available, downloading it if necessary.

        Args:
            name: Tool identity from the catalog.

        Returns:
            The installed path and whether a download happened.

        Raises:
            KeyError: If *name* is not in the catalog.
            InstallError: If any install stage fails.
        """
        definition = self.catalog.get(name)
        existing = self.find_existing(name)
        if existing is not None:
            return InstallResult(path=existing, installed=False)

        if not definition.automated:
            console.print(
                f"[yellow]\u26a0\ufe0f  We cannot yet automate the installation of {name} - "
                f"please install it manually, see: {definition.manual_url}[/yellow]"
            )
            return InstallResult(path=None, installed=False)

        console.print(Panel.fit(f"Installing {name}", style="bold blue"))
        self.bin_dir.mkdir(parents=True, exist_ok=True)
        target = self.target_for(name)
        with install_lock(self.lock_file):
            if target.path.exists():
                logger.info("%s was installed by a concurrent run", name)
                return InstallResult(path=target.path, installed=False)
            spec = self._spec_for(definition)
            self._install(spec)

        self._run_hook(definition, target.path)
        console.print(f"[green]\u2705 {name} {spec.version} installed to {target.path}[/green]")
        return InstallResult(path=target.path, installed=True)

    def _spec_for(self, definition: ToolDefinition) -> ToolSpec:
        try:
            version = self.resolver.resolve(definition)
        except ResolutionError as exc:
            raise InstallError(definition.name, "resolve", exc) from exc
        return definition.to_spec(version, self.os_name, self.arch)

    def _install(self, spec: ToolSpec) -> None:
        if spec.archive == ARCHIVE_NONE:
            self._install_bare(spec)
        else:
            self._install_archive(spec)

    def _install_bare(self, spec: ToolSpec) -> None:
        _, file_name = spec.members[0]
        final = self.bin_dir / file_name
        try:
            tmp = self.fetcher.fetch(spec.url, final)
        except FetchError as exc:
            raise InstallError(spec.name, "fetch", exc) from exc
        try:
            _commit(tmp, final)
        except OSError as exc:
            raise InstallError(spec.name, "place", exc) from exc
        finally:
            tmp.unlink(missing_ok=True)

    def _install_archive(self, spec: ToolSpec) -> None:
        staging = self.bin_dir / f".{spec.name}-staging-{uuid.uuid4()}"
        staging.mkdir(parents=True)
        try:
            archive = staging / f"{spec.name}.{spec.archive}"
            try:
                tmp = self.fetcher.fetch(spec.url, archive)
                tmp.replace(archive)
            except (FetchError, OSError) as exc:
                raise InstallError(spec.name, "fetch", exc) from exc

            try:
                extracted = self.fetcher.extract(
                    archive,
                    staging / "extracted",
                    [member for member, _ in spec.members],
                    spec.archive,
                )
            except ExtractError as exc:
                raise InstallError(spec.name, "extract", exc) from exc

            try:
                for member, file_name in spec.members:
                    _commit(extracted[member], self.bin_dir / file_name)
            except OSError as exc:
                raise InstallError(spec.name, "place", exc) from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def _run_hook(self, definition: ToolDefinition, path: Path) -> None:
        if not definition.post_install:
            return
        hook = self.hooks.get(definition.post_install)
        if hook is None:
            logger.warning("No post-install hook '%s' registered for %s",
                           definition.post_install, definition.name)
            return
        try:
            hook(path)
        except Exception as exc:
            raise InstallError(definition.name, "hook", exc) from exc


def _commit(source: Path, final: Path) -> None:
    """Make *source* executable and atomically rename it to *final*."""
    os.chmod(source, BINARY_FILE_MODE)
    os.replace(source, final)

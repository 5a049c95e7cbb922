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


"""Download to temp files and extract selected members from zip/tar.gz archives."""

from __future__ import annotations

import shutil
import tarfile
import uuid
import zipfile
from collections.abc import Iterable
from pathlib import Path

import httpx

from provision_manager import console, logger
from provision_manager.constants import (
    ARCHIVE_NONE,
    ARCHIVE_TAR_GZ,
    ARCHIVE_ZIP,
    DOWNLOAD_CHUNK_SIZE,
    TMP_SUFFIX,
)
from provision_manager.errors import ExtractError, FetchError


def temp_path_for(dest: Path) -> Path:
    """Return the ``.tmp`` sibling a download of *dest* is streamed into."""
    return dest.with_name(dest.name + TMP_SUFFIX)


class ArchiveFetcher:
    """Fetch URLs to temp files and unpack archives.

    Transfer and commit are kept apart: ``fetch`` only ever writes the
    ``.tmp`` sibling of its destination, and the caller renames it into place.

    Args:
        client: HTTP client used for downloads.
        chunk_size: Bytes read per streamed chunk.
    """

    def __init__(self, client: httpx.Client, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> None:
        self._client = client
        self._chunk_size = chunk_size

    def fetch(self, url: str, dest: Path) -> Path:
        """Stream *url* into ``<dest>.tmp``.

        Args:
            url: Download URL.
            dest: Final destination the caller will commit to.

        Returns:
            Path of the fully written temp file.

        Raises:
            FetchError: On network errors, non-2xx responses or truncated bodies.
                The temp file is removed and *dest* is left untouched.
        """
        tmp = temp_path_for(dest)
        tmp.parent.mkdir(parents=True, exist_ok=True)
        console.print(f"[yellow]\u2139\ufe0f  Downloading {url} to {dest}...[/yellow]")
        try:
            with self._client.stream("GET", url) as response:
                response.raise_for_status()
                expected = response.headers.get("Content-Length")
                with open(tmp, "wb") as out:
                    for chunk in response.iter_bytes(self._chunk_size):
                        out.write(chunk)
                # Content-Length counts encoded bytes, not the decoded chunks
                received = response.num_bytes_downloaded
            if expected is not None and expected.isdigit() and received != int(expected):
                raise FetchError(
                    f"truncated download of {url}: received {received} of {expected} bytes"
                )
        except FetchError:
            tmp.unlink(missing_ok=True)
            raise
        except (httpx.HTTPError, OSError) as exc:
            tmp.unlink(missing_ok=True)
            raise FetchError(f"unable to download {dest.name} from {url}: {exc}") from exc
        logger.info("Downloaded %s (%d bytes)", url, received)
        return tmp

    def extract(
        self,
        archive: Path,
        dest_dir: Path,
        members: Iterable[str],
        kind: str,
    ) -> dict[str, Path]:
        """Extract the named members of *archive* into *dest_dir*.

        Members are matched on their base name wherever they sit inside the
        archive and land flat in *dest_dir*.

        Args:
            archive: Downloaded archive file.
            dest_dir: Directory the members are written to.
            members: Base names of the files to extract.
            kind: ``zip`` or ``tar.gz``.

        Returns:
            Mapping of member name to extracted path.

        Raises:
            ExtractError: If the archive is corrupt or a member is missing.
        """
        wanted = set(members)
        dest_dir.mkdir(parents=True, exist_ok=True)
        if kind == ARCHIVE_ZIP:
            return self._extract_zip(archive, dest_dir, wanted)
        if kind == ARCHIVE_TAR_GZ:
            return self._extract_tar_gz(archive, dest_dir, wanted)
        if kind == ARCHIVE_NONE:
            raise ExtractError(f"{archive.name} is not an archive")
        raise ExtractError(f"unsupported archive kind '{kind}'")

    def _extract_zip(self, archive: Path, dest_dir: Path, wanted: set[str]) -> dict[str, Path]:
        scratch = dest_dir / f"{archive.name}-tmp-{uuid.uuid4()}"
        scratch.mkdir()
        try:
            try:
                with zipfile.ZipFile(archive) as zf:
                    zf.extractall(scratch)
            except (zipfile.BadZipFile, OSError) as exc:
                raise ExtractError(f"corrupt zip archive {archive.name}: {exc}") from exc

            found: dict[str, Path] = {}
            for path in sorted(scratch.rglob("*")):
                if path.is_file() and path.name in wanted and path.name not in found:
                    found[path.name] = path
            _check_missing(archive, wanted, found)

            extracted: dict[str, Path] = {}
            for name, path in found.items():
                target = dest_dir / name
                path.replace(target)
                extracted[name] = target
            return extracted
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def _extract_tar_gz(self, archive: Path, dest_dir: Path, wanted: set[str]) -> dict[str, Path]:
        extracted: dict[str, Path] = {}
        try:
            with tarfile.open(archive, "r:gz") as tf:
                for member in tf:
                    name = Path(member.name).name
                    if not member.isfile() or name not in wanted or name in extracted:
                        continue
                    source = tf.extractfile(member)
                    if source is None:
                        continue
                    target = dest_dir / name
                    with source, open(target, "wb") as out:
                        shutil.copyfileobj(source, out)
                    extracted[name] = target
        except (tarfile.TarError, EOFError, OSError) as exc:
            for path in extracted.values():
                path.unlink(missing_ok=True)
            raise ExtractError(f"corrupt tar.gz archive {archive.name}: {exc}") from exc
        _check_missing(archive, wanted, extracted)
        return extracted


def _check_missing(archive: Path, wanted: set[str], found: dict[str, Path]) -> None:
    missing = sorted(wanted - found.keys())
    if missing:
        raise ExtractError(f"could not find {', '.join(missing)} inside {archive.name}")

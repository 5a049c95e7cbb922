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


"""Tests for ArchiveFetcher download and extraction."""

from __future__ import annotations

import gzip
from pathlib import Path

import httpx
import pytest

from conftest import make_tar_gz, make_zip
from provision_manager.errors import ExtractError, FetchError
from provision_manager.fetch import ArchiveFetcher, temp_path_for


def _fetcher(handler) -> ArchiveFetcher:
    return ArchiveFetcher(httpx.Client(transport=httpx.MockTransport(handler)), chunk_size=4)


class TestFetch:
    def test_writes_only_the_temp_sibling(self, tmp_path: Path):
        dest = tmp_path / "kubectl"
        tmp = _fetcher(lambda request: httpx.Response(200, content=b"0123456789")).fetch("https://host/k", dest)

        assert tmp == temp_path_for(dest)
        assert tmp.read_bytes() == b"0123456789"
        assert not dest.exists()

    def test_truncated_body_removes_temp(self, tmp_path: Path):
        dest = tmp_path / "kubectl"
        fetcher = _fetcher(lambda request: httpx.Response(200, headers={"Content-Length": "20"}, content=b"abc"))

        with pytest.raises(FetchError, match="truncated"):
            fetcher.fetch("https://host/k", dest)
        assert list(tmp_path.iterdir()) == []

    def test_gzip_encoded_body_is_not_truncated(self, tmp_path: Path):
        """Content-Length of a compressed response is checked against the bytes on the wire."""
        body = b"#!/bin/sh\n" + b"echo kubectl\n" * 200
        encoded = gzip.compress(body)
        fetcher = _fetcher(lambda request: httpx.Response(
            200,
            headers={"Content-Encoding": "gzip", "Content-Length": str(len(encoded))},
            content=encoded,
        ))

        tmp = fetcher.fetch("https://host/kubectl", tmp_path / "kubectl")

        assert tmp.read_bytes() == body

    def test_transport_error_is_fetch_error(self, tmp_path: Path):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError, match="unable to download"):
            _fetcher(handler).fetch("https://host/k", tmp_path / "k")
        assert list(tmp_path.iterdir()) == []


class TestExtract:
    def test_tar_gz_members_land_flat(self, tmp_path: Path):
        archive = tmp_path / "a.tar.gz"
        archive.write_bytes(make_tar_gz({"darwin-amd64/helm": b"h", "darwin-amd64/tiller": b"t"}))

        out = _fetcher(None).extract(archive, tmp_path / "out", ["helm", "tiller"], "tar.gz")

        assert out == {"helm": tmp_path / "out" / "helm", "tiller": tmp_path / "out" / "tiller"}
        assert sorted(p.name for p in (tmp_path / "out").iterdir()) == ["helm", "tiller"]

    def test_zip_members_land_flat_and_scratch_is_removed(self, tmp_path: Path):
        archive = tmp_path / "a.zip"
        archive.write_bytes(make_zip({"dir/oc.exe": b"oc", "dir/README.md": b"r"}))

        out = _fetcher(None).extract(archive, tmp_path / "out", ["oc.exe"], "zip")

        assert out["oc.exe"].read_bytes() == b"oc"
        assert [p.name for p in (tmp_path / "out").iterdir()] == ["oc.exe"]

    def test_missing_member(self, tmp_path: Path):
        archive = tmp_path / "a.tar.gz"
        archive.write_bytes(make_tar_gz({"x/other": b"o"}))

        with pytest.raises(ExtractError, match="could not find helm"):
            _fetcher(None).extract(archive, tmp_path / "out", ["helm"], "tar.gz")

    def test_corrupt_zip(self, tmp_path: Path):
        archive = tmp_path / "a.zip"
        archive.write_bytes(b"garbage")

        with pytest.raises(ExtractError, match="corrupt zip"):
            _fetcher(None).extract(archive, tmp_path / "out", ["oc"], "zip")

    def test_bare_download_is_not_an_archive(self, tmp_path: Path):
        with pytest.raises(ExtractError):
            _fetcher(None).extract(tmp_path / "kubectl", tmp_path / "out", ["kubectl"], "none")

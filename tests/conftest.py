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


"""Shared fixtures and fakes for the provision_manager tests."""

from __future__ import annotations

import copy
import io
import tarfile
import time
import zipfile
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from provision_manager.catalog import ToolCatalog
from provision_manager.errors import ProcessError
from provision_manager.fetch import ArchiveFetcher
from provision_manager.installer import BinaryInstaller
from provision_manager.processes import ProcessRecord
from provision_manager.versions import VersionResolver


# ============================================================================
# Archive builders
# ============================================================================

def make_tar_gz(members: dict[str, bytes]) -> bytes:
    """Build an in-memory tar.gz with the given member paths and contents."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def make_zip(members: dict[str, bytes]) -> bytes:
    """Build an in-memory zip with the given member paths and contents."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buf.getvalue()


# ============================================================================
# Installer wiring
# ============================================================================

class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every requested URL."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[str] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(str(request.url))
            return handler(request)

        super().__init__(_record)


@pytest.fixture(autouse=True)
def _nothing_on_path(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host binaries out of the tests."""
    monkeypatch.setattr("provision_manager.installer.find_on_path", lambda name: None)
    monkeypatch.setattr("provision_manager.processes.find_on_path", lambda name: None)


@pytest.fixture
def bin_dir(tmp_path: Path) -> Path:
    return tmp_path / "bin"


@pytest.fixture
def make_installer(tmp_path: Path, bin_dir: Path):
    """Factory building a BinaryInstaller over a mock HTTP transport."""

    def _make(
        tools: dict,
        handler: Callable[[httpx.Request], httpx.Response],
        os_name: str = "linux",
        arch: str = "amd64",
        hooks: dict | None = None,
    ) -> tuple[BinaryInstaller, RecordingTransport]:
        transport = RecordingTransport(handler)
        client = httpx.Client(transport=transport)
        installer = BinaryInstaller(
            bin_dir=bin_dir,
            lock_file=tmp_path / "provision.lock",
            catalog=ToolCatalog.from_dict({"tools": tools}),
            resolver=VersionResolver(client),
            fetcher=ArchiveFetcher(client),
            os_name=os_name,
            arch=arch,
            hooks=hooks,
        )
        return installer, transport

    return _make


# ============================================================================
# Kubernetes fakes
# ============================================================================

def service(
    name: str,
    annotations: dict[str, str] | None = None,
    ingress: list[dict] | None = None,
) -> dict:
    """Build a minimal Service object as kubectl returns it."""
    obj: dict = {"metadata": {"name": name, "annotations": dict(annotations or {})}, "status": {}}
    if ingress is not None:
        obj["status"] = {"loadBalancer": {"ingress": ingress}}
    return obj


def ingress(name: str, rule_hosts: list[str], tls_hosts: list[str] | None = None) -> dict:
    spec: dict = {"rules": [{"host": h} for h in rule_hosts]}
    if tls_hosts is not None:
        spec["tls"] = [{"hosts": tls_hosts}]
    return {"metadata": {"name": name}, "spec": spec}


class FakeWatch:
    """Replays queued events, then behaves like an idle stream."""

    def __init__(self, events: list[dict]) -> None:
        self.events = list(events)
        self.stopped = False

    def next_event(self, timeout: float) -> dict | None:
        if self.events:
            return self.events.pop(0)
        time.sleep(max(timeout, 0))
        return None

    def stop(self) -> None:
        self.stopped = True

    def __enter__(self) -> FakeWatch:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


class FakeKube:
    """In-memory stand-in for KubectlClient."""

    def __init__(self) -> None:
        self.services: dict[tuple[str, str], dict] = {}
        self.ingresses: dict[tuple[str, str], dict] = {}
        self.annotate_calls: list[tuple[str, str, dict]] = []
        self.created: list[dict] = []
        self.watch_events: list[dict] = []
        self.watches: list[FakeWatch] = []

    def add_service(self, namespace: str, obj: dict) -> None:
        self.services[(namespace, obj["metadata"]["name"])] = obj

    def add_ingress(self, namespace: str, obj: dict) -> None:
        self.ingresses[(namespace, obj["metadata"]["name"])] = obj

    def annotations(self, namespace: str, name: str) -> dict:
        return self.services[(namespace, name)]["metadata"]["annotations"]

    def get_service(self, namespace: str, name: str) -> dict | None:
        obj = self.services.get((namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def get_ingress(self, namespace: str, name: str) -> dict | None:
        return copy.deepcopy(self.ingresses.get((namespace, name)))

    def list_services(self, namespace: str) -> list[dict]:
        return [copy.deepcopy(obj) for (ns, _), obj in self.services.items() if ns == namespace]

    def annotate_service(self, namespace: str, name: str, updates: dict) -> None:
        self.annotate_calls.append((namespace, name, dict(updates)))
        annotations = self.annotations(namespace, name)
        for key, value in updates.items():
            if value is None:
                annotations.pop(key, None)
            else:
                annotations[key] = value

    def create(self, manifest: dict) -> bool:
        key = (manifest["metadata"]["namespace"], manifest["metadata"]["name"])
        if key in self.services:
            return False
        self.created.append(manifest)
        self.services[key] = copy.deepcopy(manifest)
        return True

    def watch_services(self, namespace: str, name: str) -> FakeWatch:
        watch = FakeWatch(self.watch_events)
        self.watches.append(watch)
        return watch


@pytest.fixture
def kube() -> FakeKube:
    return FakeKube()


# ============================================================================
# Process fakes
# ============================================================================

class FakeProcessTable:
    """Static process snapshot recording termination requests."""

    def __init__(self, records: list[ProcessRecord], failing: set[int] | None = None) -> None:
        self.records = list(records)
        self.failing = set(failing or ())
        self.terminated: list[int] = []
        self.snapshots = 0

    def snapshot(self) -> list[ProcessRecord]:
        self.snapshots += 1
        return list(self.records)

    def terminate(self, pid: int) -> None:
        if pid in self.failing:
            raise ProcessError(f"failed to terminate process with pid {pid}: access denied")
        self.terminated.append(pid)
        self.records = [r for r in self.records if r.pid != pid]

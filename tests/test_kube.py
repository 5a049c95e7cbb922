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


"""Tests for the kubectl gateway and the Service watch stream."""

from __future__ import annotations

import io
import json

import pytest

from provision_manager import kube as kube_module
from provision_manager.errors import ReconcileError
from provision_manager.kube import KubectlClient, KubectlServiceWatch


class KubectlRecorder:
    """Replacement for run_kubectl returning canned responses in order."""

    def __init__(self, *responses: tuple[bool, str, str]) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[list[str], str | None]] = []

    def __call__(self, args, timeout=30, stdin=None):
        self.calls.append((list(args), stdin))
        return self.responses.pop(0)


@pytest.fixture
def kubectl(monkeypatch):
    def _install(*responses):
        recorder = KubectlRecorder(*responses)
        monkeypatch.setattr(kube_module, "run_kubectl", recorder)
        return recorder

    return _install


class TestKubectlClient:
    def test_get_service_decodes_json(self, kubectl):
        rec = kubectl((True, json.dumps({"metadata": {"name": "jenkins"}}), ""))
        assert KubectlClient().get_service("jx", "jenkins") == {"metadata": {"name": "jenkins"}}
        assert rec.calls[0][0] == ["get", "service", "jenkins", "-n", "jx", "-o", "json"]

    def test_not_found_is_none(self, kubectl):
        kubectl((False, "", 'Error from server (NotFound): ingresses "app" not found'))
        assert KubectlClient().get_ingress("jx", "app") is None

    def test_other_errors_raise(self, kubectl):
        kubectl((False, "", "Unable to connect to the server"))
        with pytest.raises(ReconcileError, match="Unable to connect"):
            KubectlClient().get_service("jx", "jenkins")

    def test_list_services(self, kubectl):
        kubectl((True, json.dumps({"items": [{"metadata": {"name": "a"}}]}), ""))
        assert KubectlClient().list_services("jx") == [{"metadata": {"name": "a"}}]

    def test_annotate_sets_and_removes(self, kubectl):
        rec = kubectl((True, "", ""))
        KubectlClient(context="prod").annotate_service("jx", "jenkins", {
            "fabric8.io/ingress.annotations": "a: b\nc: d",
            "fabric8.io/exposeUrl": None,
        })
        assert rec.calls[0][0] == [
            "--context", "prod",
            "annotate", "service", "jenkins", "-n", "jx", "--overwrite",
            "fabric8.io/ingress.annotations=a: b\nc: d",
            "fabric8.io/exposeUrl-",
        ]

    def test_annotate_nothing_is_a_no_op(self, kubectl):
        rec = kubectl()
        KubectlClient().annotate_service("jx", "jenkins", {})
        assert rec.calls == []

    def test_create_already_exists(self, kubectl):
        rec = kubectl((False, "", 'Error from server (AlreadyExists): services "jenkins" already exists'))
        manifest = {"kind": "Service", "metadata": {"name": "jenkins"}}
        assert KubectlClient().create(manifest) is False
        args, stdin = rec.calls[0]
        assert args == ["create", "-f", "-"]
        assert json.loads(stdin) == manifest

    def test_create_failure(self, kubectl):
        kubectl((False, "", "forbidden"))
        with pytest.raises(ReconcileError, match="failed to create Service jenkins"):
            KubectlClient().create({"kind": "Service", "metadata": {"name": "jenkins"}})


class FakeProc:
    """Finished kubectl process with canned stdout and stderr."""

    def __init__(self, stdout: str, stderr: str = "") -> None:
        self.stdout = io.StringIO(stdout)
        self.stderr = io.StringIO(stderr)
        self.terminated = False

    def poll(self) -> int:
        return 0

    def terminate(self) -> None:
        self.terminated = True


class TestKubectlServiceWatch:
    def test_decodes_pretty_printed_stream(self):
        events = [
            {"type": "ADDED", "object": {"metadata": {"name": "lb"}}},
            {"type": "MODIFIED", "object": {"metadata": {"name": "lb"}, "status": {}}},
        ]
        stdout = "".join(json.dumps(e, indent=4) + "\n" for e in events)
        calls: list[list[str]] = []

        def popen(args, **kwargs):
            calls.append(args)
            return FakeProc(stdout, stderr="watch closed")

        with KubectlServiceWatch(["get", "services", "--watch"], popen=popen) as watch:
            assert watch.next_event(2) == events[0]
            assert watch.next_event(2) == events[1]
            with pytest.raises(ReconcileError, match="watch closed"):
                watch.next_event(2)
            with pytest.raises(ReconcileError):
                watch.next_event(2)

        assert calls == [["kubectl", "get", "services", "--watch"]]

    def test_watch_services_arguments(self, monkeypatch):
        captured: dict[str, list[str]] = {}

        class Capture:
            def __init__(self, args):
                captured["args"] = args

        monkeypatch.setattr(kube_module, "KubectlServiceWatch", Capture)
        KubectlClient().watch_services("kube-system", "jxing-nginx-ingress-controller")

        assert captured["args"] == [
            "get", "services", "-n", "kube-system",
            "--field-selector", "metadata.name=jxing-nginx-ingress-controller",
            "--watch", "--output-watch-events", "-o", "json",
        ]

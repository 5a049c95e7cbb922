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


"""Tests for the Orchestrator workflows and post-install hooks."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
import sh

from conftest import service
from provision_manager import hooks
from provision_manager.config import TillerConfig
from provision_manager.constants import EXPOSE_ANNOTATION, EXPOSE_URL_ANNOTATION
from provision_manager.errors import ProcessError
from provision_manager.exposure import ServiceExposureReconciler, ServiceURL
from provision_manager.orchestrator import Orchestrator, tiller_args
from provision_manager.processes import LaunchOutcome, LaunchResult


class FakeInstaller:
    def __init__(self, present: set[str]) -> None:
        self.present = present
        self.installed: list[str] = []

    def missing(self, names):
        return [n for n in dict.fromkeys(names) if n not in self.present]

    def ensure_all(self, names):
        self.installed.extend(names)
        return []


class FakeSupervisor:
    def __init__(self, result: LaunchResult) -> None:
        self.result = result
        self.calls: list[tuple] = []

    def ensure_running(self, name, args=(), lazy=True):
        self.calls.append(("ensure_running", name, list(args), lazy))
        return self.result

    def restart(self, name, args=()):
        self.calls.append(("restart", name, list(args)))
        return self.result


def _orchestrator(kube=None, present=(), result=None, tiller=None) -> Orchestrator:
    return Orchestrator(
        installer=FakeInstaller(set(present)),
        supervisor=FakeSupervisor(result or LaunchResult(LaunchOutcome.STARTED, pid=1)),
        reconciler=ServiceExposureReconciler(kube),
        tiller=tiller or TillerConfig(),
    )


class TestRequiredTools:
    def test_base_tools_only(self, kube):
        assert _orchestrator(kube).required_tools() == ["kubectl", "helm"]

    def test_provider_tools_appended(self, kube):
        assert _orchestrator(kube).required_tools("eks") == [
            "kubectl", "helm", "eksctl", "heptio-authenticator-aws",
        ]

    def test_extra_tools_deduplicated(self, kube):
        assert _orchestrator(kube).required_tools("aws", ["kops", "ksync"]) == ["kubectl", "helm", "kops", "ksync"]

    def test_unknown_provider(self, kube):
        with pytest.raises(ValueError, match="unknown cluster provider 'nimbus'"):
            _orchestrator(kube).required_tools("nimbus")

    def test_install_requirements_only_missing(self, kube):
        orchestrator = _orchestrator(kube, present={"kubectl"})
        orchestrator.install_requirements("minikube")
        assert orchestrator.installer.installed == ["helm", "minikube"]


class TestTiller:
    def test_args_include_address_and_extras(self):
        tiller = TillerConfig(address="127.0.0.1:44134", extra_args="--storage=secret -v 2")
        assert tiller_args(tiller) == ["-listen", "127.0.0.1:44134", "-alsologtostderr", "--storage=secret", "-v", "2"]

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TILLER_ADDR", ":5555")
        assert tiller_args(TillerConfig())[:2] == ["-listen", ":5555"]

    def test_start_is_lazy(self, kube):
        orchestrator = _orchestrator(kube)
        orchestrator.start_local_tiller()
        assert orchestrator.supervisor.calls == [
            ("ensure_running", "tiller", ["-listen", ":44134", "-alsologtostderr"], True),
        ]

    def test_restart(self, kube):
        orchestrator = _orchestrator(kube)
        orchestrator.restart_local_tiller()
        assert orchestrator.supervisor.calls[0][:2] == ("restart", "tiller")

    def test_failed_start_raises(self, kube):
        failed = LaunchResult(LaunchOutcome.FAILED, detail="tiller exited with code 1")
        with pytest.raises(ProcessError, match="exited with code 1"):
            _orchestrator(kube, result=failed).start_local_tiller()

    def test_already_running_is_fine(self, kube):
        running = LaunchResult(LaunchOutcome.ALREADY_RUNNING, pid=9)
        assert _orchestrator(kube, result=running).start_local_tiller().pid == 9


class TestExposePostDeploy:
    def test_waits_annotates_and_lists(self, kube):
        kube.add_service("jx", service("jenkins", {
            EXPOSE_ANNOTATION: "true",
            EXPOSE_URL_ANNOTATION: "https://jenkins.example.com",
        }))
        kube.watch_events = [{"type": "ADDED", "object": service("lb", ingress=[{"ip": "1.2.3.4"}])}]

        urls = _orchestrator(kube).expose_post_deploy("jx", issuer="letsencrypt-staging", wait_for="lb", timeout=5)

        assert urls == [ServiceURL("jenkins", "https://jenkins.example.com")]
        assert kube.annotate_calls[0][1] == "jenkins"
        assert kube.watches[0].stopped is True


class TestHooks:
    def test_helm_secrets_plugin_sequence(self, monkeypatch):
        calls: list[tuple[str, ...]] = []

        def fake_command(path: str):
            def run(*args: str) -> str:
                calls.append(args)
                if args[:2] == ("plugin", "remove"):
                    raise sh.ErrorReturnCode_1("helm plugin remove secrets", b"", b"plugin not found")
                return ""

            return run

        monkeypatch.setattr(hooks, "sh", SimpleNamespace(Command=fake_command, ErrorReturnCode=sh.ErrorReturnCode))
        hooks.install_helm_secrets_plugin(Path("/opt/bin/helm"))

        assert calls == [
            ("init", "--client-only"),
            ("plugin", "remove", "secrets"),
            ("plugin", "install", "https://github.com/futuresimple/helm-secrets"),
        ]

    def test_local_tiller_hook_starts_tiller_and_uses_sibling_helm(self, monkeypatch):
        started: list[bool] = []
        plugin_paths: list[Path] = []
        monkeypatch.setattr(hooks, "install_helm_secrets_plugin",
                            lambda path, client_only=True: plugin_paths.append(path))

        registry = hooks.build_default_hooks(lambda: started.append(True))
        registry["local_tiller"](Path("/opt/bin/tiller"))

        assert started == [True]
        assert plugin_paths == [Path("/opt/bin/helm")]
        assert set(registry) == {"helm_secrets_plugin", "helm3_secrets_plugin", "local_tiller"}

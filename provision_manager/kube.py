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


"""kubectl-backed access to Services, Ingresses, and Service watches."""

from __future__ import annotations

import json
import queue
import subprocess
import threading
from collections.abc import Callable, Mapping
from typing import Any

from provision_manager import logger
from provision_manager.constants import (
    ALREADY_EXISTS_MARKER,
    KUBECTL_TIMEOUT_SECONDS,
    NOT_FOUND_MARKER,
    WATCH_STOP_TIMEOUT_SECONDS,
)
from provision_manager.errors import ReconcileError
from provision_manager.utils import run_kubectl


class _StreamClosed:
    def __init__(self, stderr: str) -> None:
        self.stderr = stderr


class KubectlServiceWatch:
    """A ``kubectl get --watch`` stream of Service events.

    A reader thread decodes the concatenated JSON documents kubectl prints and
    hands them to the caller through a queue. Use it as a context manager so
    the kubectl process is stopped on every exit path.
    """

    def __init__(self, args: list[str], popen: Callable[..., subprocess.Popen] = subprocess.Popen) -> None:
        self._proc = popen(
            ["kubectl", *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        self._events: queue.Queue[Any] = queue.Queue()
        self._closed: _StreamClosed | None = None
        self._reader = threading.Thread(target=self._read, name="kubectl-watch", daemon=True)
        self._reader.start()

    def _read(self) -> None:
        decoder = json.JSONDecoder()
        buffer = ""
        try:
            for line in self._proc.stdout:
                buffer += line
                while True:
                    buffer = buffer.lstrip()
                    if not buffer:
                        break
                    try:
                        event, end = decoder.raw_decode(buffer)
                    except ValueError:
                        # incomplete document, wait for more output
                        break
                    self._events.put(event)
                    buffer = buffer[end:]
        except (OSError, ValueError) as exc:
            logger.debug("kubectl watch stream ended: %s", exc)
        stderr = ""
        if self._proc.stderr is not None:
            try:
                stderr = self._proc.stderr.read()
            except (OSError, ValueError):
                stderr = ""
        self._events.put(_StreamClosed(stderr.strip()))

    def next_event(self, timeout: float) -> dict | None:
        """Wait up to *timeout* seconds for the next watch event.

        Returns:
            The decoded event, or None if nothing arrived in time.

        Raises:
            ReconcileError: If the kubectl stream has ended.
        """
        if self._closed is not None:
            raise ReconcileError(f"service watch closed: {self._closed.stderr or 'no output'}")
        try:
            item = self._events.get(timeout=max(timeout, 0))
        except queue.Empty:
            return None
        if isinstance(item, _StreamClosed):
            self._closed = item
            raise ReconcileError(f"service watch closed: {item.stderr or 'no output'}")
        return item

    def stop(self) -> None:
        """Terminate the kubectl process and wait for the reader to finish."""
        if self._proc.poll() is None:
            self._proc.terminate()
            try:
                self._proc.wait(timeout=WATCH_STOP_TIMEOUT_SECONDS)
            except subprocess.TimeoutExpired:
                self._proc.kill()
                self._proc.wait()
        self._reader.join(timeout=WATCH_STOP_TIMEOUT_SECONDS)

    def __enter__(self) -> KubectlServiceWatch:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


class KubectlClient:
    """Thin gateway over kubectl returning decoded JSON objects.

    Args:
        context: Optional kubeconfig context passed as ``--context``.
        timeout: Per-call timeout in seconds.
    """

    def __init__(self, context: str | None = None, timeout: int = KUBECTL_TIMEOUT_SECONDS) -> None:
        self.context = context
        self.timeout = timeout

    def _args(self, args: list[str]) -> list[str]:
        if self.context:
            return ["--context", self.context, *args]
        return args

    def _run(self, args: list[str], stdin: str | None = None) -> str:
        ok, stdout, stderr = run_kubectl(self._args(args), timeout=self.timeout, stdin=stdin)
        if not ok:
            raise ReconcileError(f"kubectl {' '.join(args[:3])} failed: {stderr.strip()}")
        return stdout

    def _get_optional(self, kind: str, namespace: str, name: str) -> dict | None:
        args = ["get", kind, name, "-n", namespace, "-o", "json"]
        ok, stdout, stderr = run_kubectl(self._args(args), timeout=self.timeout)
        if not ok:
            if NOT_FOUND_MARKER in stderr:
                return None
            raise ReconcileError(f"failed to get {kind} {name} in namespace {namespace}: {stderr.strip()}")
        return json.loads(stdout)

    def get_service(self, namespace: str, name: str) -> dict | None:
        """Return the Service object, or None if it does not exist."""
        return self._get_optional("service", namespace, name)

    def get_ingress(self, namespace: str, name: str) -> dict | None:
        """Return the Ingress object, or None if it does not exist."""
        return self._get_optional("ingress", namespace, name)

    def list_services(self, namespace: str) -> list[dict]:
        stdout = self._run(["get", "services", "-n", namespace, "-o", "json"])
        return json.loads(stdout).get("items", [])

    def annotate_service(self, namespace: str, name: str, updates: Mapping[str, str | None]) -> None:
        """Set or remove annotations on a Service.

        Args:
            namespace: Namespace of the Service.
            name: Service name.
            updates: Annotation values keyed by annotation key; None removes the key.

        Raises:
            ReconcileError: If kubectl rejects the update.
        """
        if not updates:
            return
        pairs = [f"{key}-" if value is None else f"{key}={value}" for key, value in updates.items()]
        self._run(["annotate", "service", name, "-n", namespace, "--overwrite", *pairs])

    def create(self, manifest: dict) -> bool:
        """Create an object from a manifest.

        Returns:
            True if the object was created, False if it already existed.

        Raises:
            ReconcileError: For any failure other than ``AlreadyExists``.
        """
        ok, _, stderr = run_kubectl(self._args(["create", "-f", "-"]), timeout=self.timeout,
                                    stdin=json.dumps(manifest))
        if ok:
            return True
        if ALREADY_EXISTS_MARKER in stderr:
            return False
        kind = manifest.get("kind", "object")
        name = manifest.get("metadata", {}).get("name", "")
        raise ReconcileError(f"failed to create {kind} {name}: {stderr.strip()}")

    def watch_services(self, namespace: str, name: str) -> KubectlServiceWatch:
        """Open a watch restricted to the single Service called *name*."""
        return KubectlServiceWatch(self._args([
            "get", "services",
            "-n", namespace,
            "--field-selector", f"metadata.name={name}",
            "--watch",
            "--output-watch-events",
            "-o", "json",
        ]))

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


"""Service exposure reconciliation: URL discovery, issuer annotations, readiness."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

import httpx
from rich.panel import Panel

from provision_manager import console, logger
from provision_manager.constants import (
    CERT_MANAGER_ANNOTATION,
    EXPOSE_ANNOTATION,
    EXPOSE_GENERATED_BY_ANNOTATION,
    EXPOSE_INGRESS_ANNOTATION,
    EXPOSE_URL_ANNOTATION,
    JENKINS_LOCATION_SCRIPT,
    JENKINS_SCRIPT_PATH,
    JENKINS_SERVICE_NAME,
    LINK_GENERATOR,
    SKIP_TLS_ANNOTATION,
)
from provision_manager.errors import ReadinessTimeout, ReconcileError
from provision_manager.kube import KubectlClient

# (namespace, script path, script body)
ScriptPoster = Callable[[str, str, str], None]


@dataclass(frozen=True)
class ServiceURL:
    name: str
    url: str


class IngressAnnotations:
    """Ordered ``key: value`` entries of the ingress annotations block.

    Each entry keeps its original line, so entries that are not touched are
    written back exactly as they were read.
    """

    def __init__(self, lines: Iterable[str] = ()) -> None:
        self._lines = list(lines)

    @classmethod
    def parse(cls, text: str | None) -> IngressAnnotations:
        if not text:
            return cls()
        return cls(text.split("\n"))

    @staticmethod
    def _key(line: str) -> str:
        return line.split(":", 1)[0].strip()

    @staticmethod
    def _value(line: str) -> str:
        parts = line.split(":", 1)
        return parts[1].strip() if len(parts) == 2 else ""

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        for line in self._lines:
            yield self._key(line), self._value(line)

    def get(self, key: str) -> str | None:
        for line in self._lines:
            if self._key(line) == key:
                return self._value(line)
        return None

    def set(self, key: str, value: str) -> bool:
        """Add or update *key*.

        Returns:
            False if an identical entry was already present.
        """
        entry = f"{key}: {value}"
        for index, line in enumerate(self._lines):
            if self._key(line) == key:
                if self._value(line) == value:
                    return False
                self._lines[index] = entry
                return True
        self._lines.append(entry)
        return True

    def remove(self, key: str) -> bool:
        """Drop every entry for *key*; returns True if anything was removed."""
        kept = [line for line in self._lines if self._key(line) != key]
        removed = len(kept) != len(self._lines)
        self._lines = kept
        return removed

    def serialize(self) -> str:
        return "\n".join(self._lines)


def _annotations(service: dict | None) -> dict:
    if not service:
        return {}
    return service.get("metadata", {}).get("annotations") or {}


def _name(service: dict) -> str:
    return service.get("metadata", {}).get("name", "")


def get_exposed_url(service: dict | None) -> str:
    """Return the exposed URL annotation of a Service, or an empty string."""
    return _annotations(service).get(EXPOSE_URL_ANNOTATION, "")


def is_tls_exposed(service: dict) -> bool:
    """Exposed Services that have not opted out of TLS."""
    annotations = _annotations(service)
    return annotations.get(EXPOSE_ANNOTATION) == "true" and annotations.get(SKIP_TLS_ANNOTATION) != "true"


def has_external_address(service: dict) -> bool:
    """Check whether a Service has a load balancer ingress with an IP or hostname."""
    status = service.get("status") or {}
    ingress = (status.get("loadBalancer") or {}).get("ingress") or []
    return any(entry.get("ip") or entry.get("hostname") for entry in ingress)


def ingress_host(ingress: dict | None) -> tuple[str, bool] | None:
    """Pick the public host of an Ingress.

    The first non-empty TLS host wins; otherwise the host of the first rule.
    An Ingress without rules has no usable host.

    Returns:
        ``(host, tls)`` or None.
    """
    if not ingress:
        return None
    spec = ingress.get("spec", {})
    rules = spec.get("rules") or []
    if not rules:
        return None
    for tls in spec.get("tls") or []:
        for host in tls.get("hosts") or []:
            if host:
                return host, True
    host = rules[0].get("host", "")
    if host:
        return host, False
    return None


class ServiceExposureReconciler:
    """Reads and writes exposure state of Services in a cluster.

    Args:
        kube: Cluster gateway; a default ``KubectlClient`` when omitted.
    """

    def __init__(self, kube: KubectlClient | None = None) -> None:
        self.kube = kube or KubectlClient()

    get_exposed_url = staticmethod(get_exposed_url)
    has_external_address = staticmethod(has_external_address)

    # =========================================================================
    # URL discovery
    # =========================================================================

    def find_service_url(self, namespace: str, name: str) -> str:
        """Find the external URL of a Service.

        Uses the Service's exposed URL annotation, falling back to the Ingress
        of the same name.

        Returns:
            The URL, or an empty string when neither resource yields a host.

        Raises:
            ReconcileError: If the Service does not exist or kubectl fails.
        """
        service = self.kube.get_service(namespace, name)
        if service is None:
            raise ReconcileError(f"service {name} not found in namespace {namespace}")
        url = get_exposed_url(service)
        if url:
            return url
        found = ingress_host(self.kube.get_ingress(namespace, name))
        if found is None:
            return ""
        host, tls = found
        return f"https://{host}" if tls else f"http://{host}"

    def find_service_hostname(self, namespace: str, name: str) -> str:
        """Return the bare Ingress host for *name*, or an empty string."""
        found = ingress_host(self.kube.get_ingress(namespace, name))
        return found[0] if found else ""

    def find_service_urls(self, namespace: str) -> list[ServiceURL]:
        return [
            ServiceURL(name=_name(svc), url=get_exposed_url(svc))
            for svc in self.kube.list_services(namespace)
            if get_exposed_url(svc)
        ]

    def get_service_names(self, namespace: str, name_filter: str = "") -> list[str]:
        """Sorted Service names in *namespace* containing *name_filter*."""
        names = [_name(svc) for svc in self.kube.list_services(namespace)]
        return sorted(n for n in names if not name_filter or name_filter in n)

    def is_service_present(self, namespace: str, name: str) -> bool:
        return self.kube.get_service(namespace, name) is not None

    # =========================================================================
    # Certificate issuer annotations
    # =========================================================================

    def annotate_with_issuer(self, namespace: str, issuer: str) -> list[str]:
        """Add the certificate issuer directive to every TLS-exposed Service.

        A Service that already carries the same issuer entry is left alone; a
        different issuer value is replaced in place.

        Returns:
            Names of the Services that were updated.

        Raises:
            ReconcileError: If listing or updating a Service fails.
        """
        updated: list[str] = []
        for service in self.kube.list_services(namespace):
            if not is_tls_exposed(service):
                continue
            name = _name(service)
            block = IngressAnnotations.parse(_annotations(service).get(EXPOSE_INGRESS_ANNOTATION))
            if not block.set(CERT_MANAGER_ANNOTATION, issuer):
                logger.debug("service %s already annotated with issuer %s", name, issuer)
                continue
            try:
                self.kube.annotate_service(namespace, name, {EXPOSE_INGRESS_ANNOTATION: block.serialize()})
            except ReconcileError as exc:
                raise ReconcileError(
                    f"failed to annotate and update service {name} in namespace {namespace}: {exc}"
                ) from exc
            updated.append(name)
        return updated

    def clean_issuer_annotations(self, namespace: str) -> list[str]:
        """Remove the issuer directive and the exposed URL from TLS-exposed Services.

        Other ingress annotation entries keep their content and order. A block
        left empty is removed.

        Returns:
            Names of the Services that were updated.
        """
        updated: list[str] = []
        for service in self.kube.list_services(namespace):
            if not is_tls_exposed(service):
                continue
            name = _name(service)
            annotations = _annotations(service)
            updates: dict[str, str | None] = {}
            block = IngressAnnotations.parse(annotations.get(EXPOSE_INGRESS_ANNOTATION))
            if block.remove(CERT_MANAGER_ANNOTATION):
                updates[EXPOSE_INGRESS_ANNOTATION] = block.serialize() if len(block) else None
            if EXPOSE_URL_ANNOTATION in annotations:
                updates[EXPOSE_URL_ANNOTATION] = None
            if not updates:
                continue
            try:
                self.kube.annotate_service(namespace, name, updates)
            except ReconcileError as exc:
                raise ReconcileError(
                    f"failed to clean service {name} annotations in namespace {namespace}: {exc}"
                ) from exc
            updated.append(name)
        return updated

    # =========================================================================
    # Readiness and links
    # =========================================================================

    def wait_for_external_address(self, name: str, namespace: str, timeout: float) -> None:
        """Block until Service *name* reports an external IP or hostname.

        Args:
            name: Service name.
            namespace: Service namespace.
            timeout: Upper bound in seconds.

        Raises:
            ReadinessTimeout: If no qualifying event arrives within *timeout*.
            ReconcileError: If the watch fails.
        """
        logger.info("waiting for service %s in namespace %s to get an external address", name, namespace)
        deadline = time.monotonic() + timeout
        with self.kube.watch_services(namespace, name) as watch:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ReadinessTimeout(name, namespace, timeout)
                event = watch.next_event(remaining)
                if event is None:
                    continue
                if event.get("type") == "ERROR":
                    raise ReconcileError(f"watch on service {name} failed: {event.get('object')}")
                service = event.get("object", event)
                if has_external_address(service):
                    logger.info("service %s has an external address", name)
                    return

    def create_service_link(self, current_namespace: str, target_namespace: str, name: str, url: str) -> bool:
        """Create an ExternalName Service in *current_namespace* pointing at *target_namespace*.

        Returns:
            True if created, False if a Service of that name already existed.
        """
        manifest = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {
                "name": name,
                "namespace": current_namespace,
                "annotations": {
                    EXPOSE_URL_ANNOTATION: url,
                    EXPOSE_GENERATED_BY_ANNOTATION: LINK_GENERATOR,
                },
            },
            "spec": {
                "type": "ExternalName",
                "externalName": f"{name}.{target_namespace}.svc.cluster.local",
            },
        }
        created = self.kube.create(manifest)
        if not created:
            console.print(f"[yellow]\u2139\ufe0f  Service {name} already exists in {current_namespace}[/yellow]")
        return created

    def update_jenkins_url(self, namespaces: Iterable[str], post_script: ScriptPoster) -> list[str]:
        """Point the CI server location at its exposed URL in each namespace.

        Namespaces without a ``jenkins`` Service, or where it has no exposed
        URL, are skipped.

        Returns:
            Namespaces whose CI server was updated.
        """
        updated: list[str] = []
        for namespace in namespaces:
            service = self.kube.get_service(namespace, JENKINS_SERVICE_NAME)
            url = get_exposed_url(service)
            if not url:
                logger.debug("no exposed %s service in namespace %s", JENKINS_SERVICE_NAME, namespace)
                continue
            console.print(Panel.fit(f"Updating Jenkins with new external URL details {url}", style="bold blue"))
            post_script(namespace, JENKINS_SCRIPT_PATH, JENKINS_LOCATION_SCRIPT.format(url=url))
            updated.append(namespace)
        return updated

    def jenkins_script_poster(
        self, client: httpx.Client, auth: tuple[str, str] | None = None
    ) -> ScriptPoster:
        """Build a poster that runs a Groovy script on the namespace's CI server.

        The script is form-posted to the exposed URL of the ``jenkins`` Service.

        Args:
            client: HTTP client used for the request.
            auth: Optional ``(user, api token)`` pair.
        """

        def post(namespace: str, path: str, script: str) -> None:
            base = self.find_service_url(namespace, JENKINS_SERVICE_NAME)
            if not base:
                raise ReconcileError(f"no external URL for {JENKINS_SERVICE_NAME} in namespace {namespace}")
            try:
                response = client.post(base.rstrip("/") + path, data={"script": script}, auth=auth)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise ReconcileError(
                    f"failed to run script on {JENKINS_SERVICE_NAME} in namespace {namespace}: {exc}"
                ) from exc
            logger.info("ran %s on %s in namespace %s", path, JENKINS_SERVICE_NAME, namespace)

        return post

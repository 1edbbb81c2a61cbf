"""Kubernetes adapter: one pod per cluster node."""

from __future__ import annotations

import json
import time
import logging
import ipaddress
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from dyncluster.errors import ContainerNotFound, RuntimeFailure
from dyncluster.runtime.base import (
    LABEL_CLUSTER_ID,
    ContainerInfo,
    ContainerRuntime,
    ContainerSpec,
    NetworkAddress,
)
from dyncluster.runtime.pod_gen import NETWORK_STATUS_ANNOTATION, generate_pod

logger = logging.getLogger(__name__)


def parse_network_status(annotations: Optional[Dict[str, str]]) -> Dict[str, NetworkAddress]:
    """
    Read per-network addresses from the Multus network-status annotation.

    Network names are reported as ``<namespace>/<name>``; the namespace is
    dropped. Link-local IPv6 addresses are skipped.
    """
    raw = (annotations or {}).get(NETWORK_STATUS_ANNOTATION)
    if not raw:
        return {}
    try:
        entries = json.loads(raw)
    except ValueError:
        logger.warning(f"Malformed {NETWORK_STATUS_ANNOTATION} annotation: {raw!r}")
        return {}
    if not isinstance(entries, list):
        logger.warning(f"Unexpected {NETWORK_STATUS_ANNOTATION} annotation: {raw!r}")
        return {}

    result: Dict[str, NetworkAddress] = {}
    for entry in entries:
        name = str(entry.get("name", "")).rsplit("/", 1)[-1]
        addr = NetworkAddress()
        for ip in entry.get("ips", []):
            try:
                parsed = ipaddress.ip_address(ip)
            except ValueError:
                continue
            if parsed.version == 4 and not addr.ipv4:
                addr.ipv4 = ip
            elif parsed.version == 6 and not parsed.is_link_local and not addr.ipv6:
                addr.ipv6 = ip
        result[name] = addr
    return result


class KubernetesRuntime(ContainerRuntime):
    """Runs each node as a pod attached to a secondary (Multus) network."""

    def __init__(
        self,
        namespace: str = "dyncluster",
        core_api: Optional[client.CoreV1Api] = None,
        start_timeout_s: float = 120.0,
        poll_interval_s: float = 1.0,
    ) -> None:
        """
        Initialize the runtime with a Kubernetes client.

        Args:
            namespace: Namespace the node pods live in
            core_api: Optional preconfigured CoreV1Api
            start_timeout_s: How long start() waits for a pod to run
            poll_interval_s: Delay between pod phase checks
        """
        self.namespace = namespace
        self.start_timeout_s = start_timeout_s
        self.poll_interval_s = poll_interval_s

        if core_api is None:
            try:
                config.load_incluster_config()
                logger.info("Loaded in-cluster Kubernetes config")
            except config.ConfigException:
                config.load_kube_config()
                logger.info("Loaded kubeconfig")
            core_api = client.CoreV1Api()
        self.core = core_api

    def _read_pod(self, name: str) -> Any:
        try:
            return self.core.read_namespaced_pod(name=name, namespace=self.namespace)
        except ApiException as e:
            if e.status == 404:
                raise ContainerNotFound(name) from e
            raise RuntimeFailure(f"failed to read pod {name}: status={e.status}, reason={e.reason}") from e

    def create(self, spec: ContainerSpec) -> str:
        pod = generate_pod(spec, self.namespace)
        try:
            created = self.core.create_namespaced_pod(namespace=self.namespace, body=pod)
        except ApiException as e:
            raise RuntimeFailure(
                f"failed to create pod {pod.metadata.name}: status={e.status}, reason={e.reason}"
            ) from e
        logger.info(f"Created pod {created.metadata.name} from {spec.image}")
        return created.metadata.name

    def start(self, container_id: str) -> None:
        # Pods start on their own once scheduled; wait until they are running
        deadline = time.monotonic() + self.start_timeout_s
        while True:
            pod = self._read_pod(container_id)
            phase = pod.status.phase if pod.status else None
            if phase == "Running":
                return
            if phase in ("Failed", "Succeeded"):
                raise RuntimeFailure(f"pod {container_id} exited before running (phase={phase})")
            if time.monotonic() >= deadline:
                raise RuntimeFailure(
                    f"pod {container_id} not running after {self.start_timeout_s:.0f}s (phase={phase})"
                )
            time.sleep(self.poll_interval_s)

    def inspect(self, container_id: str) -> Dict[str, NetworkAddress]:
        pod = self._read_pod(container_id)
        return parse_network_status(pod.metadata.annotations)

    def stop(self, container_id: str) -> None:
        try:
            self.core.delete_namespaced_pod(name=container_id, namespace=self.namespace)
        except ApiException as e:
            if e.status == 404:
                raise ContainerNotFound(container_id) from e
            raise RuntimeFailure(
                f"failed to delete pod {container_id}: status={e.status}, reason={e.reason}"
            ) from e

    def list(self) -> List[ContainerInfo]:
        try:
            pods = self.core.list_namespaced_pod(namespace=self.namespace, label_selector=LABEL_CLUSTER_ID)
        except ApiException as e:
            raise RuntimeFailure(f"failed to list pods: status={e.status}, reason={e.reason}") from e

        result = []
        for pod in pods.items:
            annotations = pod.metadata.annotations or {}
            labels = dict(pod.metadata.labels or {})
            labels.update(annotations)
            phase = pod.status.phase if pod.status else None
            result.append(ContainerInfo(
                id=pod.metadata.name,
                state=(phase or "unknown").lower(),
                labels=labels,
                networks=parse_network_status(annotations),
            ))
        return result

"""Generate Kubernetes V1Pod objects for cluster nodes."""

from __future__ import annotations

import re
import hashlib
from typing import Dict

from kubernetes.client import (
    V1Container,
    V1HostPathVolumeSource,
    V1ObjectMeta,
    V1Pod,
    V1PodDNSConfig,
    V1PodSpec,
    V1Volume,
    V1VolumeMount,
)

from dyncluster.runtime.base import LABEL_CLUSTER_ID, ContainerSpec

NETWORKS_ANNOTATION = "k8s.v1.cni.cncf.io/networks"
NETWORK_STATUS_ANNOTATION = "k8s.v1.cni.cncf.io/network-status"

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]+")
_MAX_NAME_LEN = 63


def pod_name_for(container_name: str) -> str:
    """
    Map a container name onto a valid DNS-1123 pod name.

    Names longer than 63 characters are cut and suffixed with a hash of the
    full name so that distinct long names stay distinct.
    """
    name = _INVALID_NAME_CHARS.sub("-", container_name.lower()).strip("-")
    if len(name) <= _MAX_NAME_LEN:
        return name
    digest = hashlib.sha1(container_name.encode("utf-8")).hexdigest()[:8]
    return f"{name[:_MAX_NAME_LEN - len(digest) - 1].rstrip('-')}-{digest}"


def _volumes(binds: Dict[str, str]) -> tuple[list[V1Volume], list[V1VolumeMount]]:
    volumes = []
    mounts = []
    for idx, (host_path, container_path) in enumerate(sorted(binds.items())):
        volume_name = f"bind-{idx}"
        volumes.append(V1Volume(name=volume_name, host_path=V1HostPathVolumeSource(path=host_path)))
        mounts.append(V1VolumeMount(name=volume_name, mount_path=container_path, read_only=True))
    return volumes, mounts


def generate_pod(spec: ContainerSpec, namespace: str) -> V1Pod:
    """
    Generate a V1Pod for one node container.

    Node labels go into annotations since label values cannot carry arbitrary
    user identities; only the cluster id (always a short hex string) is also
    set as a real label so pods can be selected by it.

    Args:
        spec: Runtime-neutral container request
        namespace: Kubernetes namespace

    Returns:
        V1Pod object ready for creation
    """
    volumes, mounts = _volumes(spec.binds)

    container = V1Container(
        name="server",
        image=spec.image,
        image_pull_policy="IfNotPresent",
        volume_mounts=mounts,
    )

    pod_spec = V1PodSpec(
        containers=[container],
        volumes=volumes,
        restart_policy="Never",
        hostname=pod_name_for(spec.name),
    )
    if spec.dns_servers:
        pod_spec.dns_policy = "None"
        pod_spec.dns_config = V1PodDNSConfig(nameservers=list(spec.dns_servers))

    annotations = dict(spec.labels)
    annotations[NETWORKS_ANNOTATION] = spec.network

    labels = {"app": "dyncluster-node"}
    if LABEL_CLUSTER_ID in spec.labels:
        labels[LABEL_CLUSTER_ID] = spec.labels[LABEL_CLUSTER_ID]

    return V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=V1ObjectMeta(
            name=pod_name_for(spec.name),
            namespace=namespace,
            labels=labels,
            annotations=annotations,
        ),
        spec=pod_spec,
    )

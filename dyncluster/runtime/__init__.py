"""Container runtime adapters."""

from __future__ import annotations

import logging

from dyncluster.config import DaemonConfig
from dyncluster.runtime.base import (
    LABEL_CLUSTER_ID,
    LABEL_CREATOR,
    LABEL_INITIAL_SERVER_VERSION,
    LABEL_NODE_NAME,
    ContainerInfo,
    ContainerRuntime,
    ContainerSpec,
    NetworkAddress,
)

logger = logging.getLogger(__name__)

__all__ = [
    "LABEL_CLUSTER_ID",
    "LABEL_CREATOR",
    "LABEL_INITIAL_SERVER_VERSION",
    "LABEL_NODE_NAME",
    "ContainerInfo",
    "ContainerRuntime",
    "ContainerSpec",
    "NetworkAddress",
    "create_runtime",
]


def create_runtime(daemon_config: DaemonConfig) -> ContainerRuntime:
    """Build the runtime adapter selected by ``daemon_config.runtime``."""
    kind = daemon_config.runtime.lower()
    if kind == "docker":
        from dyncluster.runtime.docker_runtime import DockerRuntime
        return DockerRuntime()
    if kind == "kubernetes":
        from dyncluster.runtime.kubernetes_runtime import KubernetesRuntime
        return KubernetesRuntime(
            namespace=daemon_config.namespace,
            start_timeout_s=daemon_config.pod_start_timeout_s,
        )
    raise ValueError(f"unknown container runtime: {daemon_config.runtime!r}")

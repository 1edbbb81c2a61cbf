"""Runtime-neutral container contract used by the node manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List

# Labels written on every node container. The reconciler relies on them,
# so the keys must not change.
LABEL_CREATOR = "com.couchbase.dyncluster.creator"
LABEL_CLUSTER_ID = "com.couchbase.dyncluster.cluster_id"
LABEL_NODE_NAME = "com.couchbase.dyncluster.node_name"
LABEL_INITIAL_SERVER_VERSION = "com.couchbase.dyncluster.initial_server_version"

LOCALTIME_PATH = "/etc/localtime"


@dataclass
class NetworkAddress:
    ipv4: str = ""
    ipv6: str = ""


@dataclass
class ContainerSpec:
    name: str
    image: str
    network: str
    labels: Dict[str, str] = field(default_factory=dict)
    # host path -> container path, mounted read-only
    binds: Dict[str, str] = field(default_factory=lambda: {LOCALTIME_PATH: LOCALTIME_PATH})
    dns_servers: List[str] = field(default_factory=list)
    auto_remove: bool = True


@dataclass
class ContainerInfo:
    """One entry of a runtime listing."""
    id: str
    state: str
    labels: Dict[str, str] = field(default_factory=dict)
    networks: Dict[str, NetworkAddress] = field(default_factory=dict)


class ContainerRuntime(ABC):
    """
    Primitive container operations.

    Implementations raise RuntimeFailure for failed calls and
    ContainerNotFound when the target container no longer exists.
    """

    @abstractmethod
    def create(self, spec: ContainerSpec) -> str:
        """Create (but do not start) a container and return its id."""
        raise NotImplementedError

    @abstractmethod
    def start(self, container_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def inspect(self, container_id: str) -> Dict[str, NetworkAddress]:
        """Addresses of the container keyed by network name."""
        raise NotImplementedError

    @abstractmethod
    def stop(self, container_id: str) -> None:
        """Stop the container; auto-removal takes care of deleting it."""
        raise NotImplementedError

    @abstractmethod
    def list(self) -> List[ContainerInfo]:
        """All node containers, including stopped ones."""
        raise NotImplementedError

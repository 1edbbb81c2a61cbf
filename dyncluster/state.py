"""View models for nodes and clusters, plus persisted cluster metadata."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from dyncluster.versions import NodeVersion


@dataclass
class NodeOptions:
    name: str = ""
    platform: str = "centos7"
    server_version: str = ""
    version_info: Optional[NodeVersion] = None

    def with_defaults(self, index: int) -> "NodeOptions":
        """Copy with a generated ``node_<n>`` name if none was given (1-based)."""
        if self.name:
            return replace(self)
        return replace(self, name=f"node_{index + 1}")


@dataclass
class ClusterOptions:
    timeout: timedelta
    nodes: List[NodeOptions] = field(default_factory=list)


@dataclass
class ClusterMeta:
    """Owner and absolute expiry of a cluster, kept in the metadata store."""
    owner: str
    timeout: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"owner": self.owner, "timeout": self.timeout.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterMeta":
        timeout = data["timeout"]
        if isinstance(timeout, str):
            timeout = datetime.fromisoformat(timeout)
        return cls(owner=data["owner"], timeout=timeout)


@dataclass
class Node:
    container_id: str
    state: str
    name: str
    initial_server_version: str
    ipv4_address: str = ""
    ipv6_address: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.container_id,
            "state": self.state,
            "name": self.name,
            "initial_server_version": self.initial_server_version,
            "ipv4_address": self.ipv4_address,
            "ipv6_address": self.ipv6_address,
        }


@dataclass
class Cluster:
    """
    Reconciled view of one cluster.

    Rebuilt from runtime state and the metadata store on every read.
    ``owner`` and ``timeout`` are empty when no metadata record exists.
    """
    id: str
    creator: str
    owner: str = ""
    timeout: Optional[datetime] = None
    nodes: List[Node] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "creator": self.creator,
            "owner": self.owner,
            "timeout": self.timeout.isoformat() if self.timeout else None,
            "nodes": [node.to_dict() for node in self.nodes],
        }

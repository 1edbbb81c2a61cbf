"""Exceptions raised by the cluster daemon."""

from __future__ import annotations


class DynclusterError(Exception):
    """Base class for all daemon errors."""


class InvalidRequest(DynclusterError):
    """Request rejected before any side effect took place."""


class InvalidVersion(InvalidRequest):
    pass


class UnknownFlavor(InvalidRequest):
    pass


class NotFound(DynclusterError):
    pass


class ClusterNotFound(NotFound):
    def __init__(self, cluster_id: str):
        self.cluster_id = cluster_id
        super().__init__(f"cluster not found: {cluster_id}")


class MetaNotFound(NotFound):
    def __init__(self, cluster_id: str):
        self.cluster_id = cluster_id
        super().__init__(f"no metadata stored for cluster {cluster_id}")


class Forbidden(DynclusterError):
    pass


class RuntimeFailure(DynclusterError):
    """A container runtime call failed."""


class ContainerNotFound(NotFound, RuntimeFailure):
    def __init__(self, container_id: str):
        self.container_id = container_id
        super().__init__(f"container not found: {container_id}")


class RegistrationFailure(DynclusterError):
    """DNS registration failed. Logged by callers, never propagated."""

    def __init__(self, hostname: str, ip: str, reason: str, body: str = ""):
        self.hostname = hostname
        self.ip = ip
        self.body = body
        super().__init__(f"failed registering {hostname} => {ip}: {reason}")

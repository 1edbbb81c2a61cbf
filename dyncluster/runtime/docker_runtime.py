"""Docker engine adapter for node containers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import docker
from docker.errors import DockerException, NotFound

from dyncluster.errors import ContainerNotFound, RuntimeFailure
from dyncluster.runtime.base import (
    LABEL_CLUSTER_ID,
    ContainerInfo,
    ContainerRuntime,
    ContainerSpec,
    NetworkAddress,
)

logger = logging.getLogger(__name__)

SHORT_ID_LENGTH = 12


def _addresses(networks: Optional[Dict[str, Any]]) -> Dict[str, NetworkAddress]:
    result: Dict[str, NetworkAddress] = {}
    for name, settings in (networks or {}).items():
        settings = settings or {}
        result[name] = NetworkAddress(
            ipv4=settings.get("IPAddress") or "",
            ipv6=settings.get("GlobalIPv6Address") or "",
        )
    return result


class DockerRuntime(ContainerRuntime):
    """Runs each node as a container on the local Docker engine."""

    def __init__(self, client: Optional[docker.DockerClient] = None) -> None:
        if client is None:
            try:
                client = docker.from_env()
            except DockerException as e:
                raise RuntimeFailure(f"could not connect to docker: {e}") from e
            logger.info("Connected to Docker engine")
        self.client = client
        self.api = client.api

    def create(self, spec: ContainerSpec) -> str:
        host_config = self.api.create_host_config(
            binds={host: {"bind": path, "mode": "ro"} for host, path in spec.binds.items()},
            auto_remove=spec.auto_remove,
            network_mode=spec.network,
            dns=spec.dns_servers or None,
        )
        try:
            result = self.api.create_container(
                image=spec.image,
                name=spec.name,
                labels=spec.labels,
                volumes=list(spec.binds.values()),
                host_config=host_config,
            )
        except DockerException as e:
            raise RuntimeFailure(f"failed to create container {spec.name}: {e}") from e
        logger.info(f"Created container {spec.name} ({result['Id'][:SHORT_ID_LENGTH]}) from {spec.image}")
        return result["Id"]

    def start(self, container_id: str) -> None:
        try:
            self.api.start(container_id)
        except NotFound as e:
            raise ContainerNotFound(container_id) from e
        except DockerException as e:
            raise RuntimeFailure(f"failed to start container {container_id}: {e}") from e

    def inspect(self, container_id: str) -> Dict[str, NetworkAddress]:
        try:
            details = self.api.inspect_container(container_id)
        except NotFound as e:
            raise ContainerNotFound(container_id) from e
        except DockerException as e:
            raise RuntimeFailure(f"failed to inspect container {container_id}: {e}") from e
        return _addresses(details.get("NetworkSettings", {}).get("Networks"))

    def stop(self, container_id: str) -> None:
        try:
            self.api.stop(container_id)
        except NotFound as e:
            raise ContainerNotFound(container_id) from e
        except DockerException as e:
            raise RuntimeFailure(f"failed to stop container {container_id}: {e}") from e

    def list(self) -> List[ContainerInfo]:
        try:
            containers = self.api.containers(all=True, filters={"label": LABEL_CLUSTER_ID})
        except DockerException as e:
            raise RuntimeFailure(f"failed to list containers: {e}") from e

        return [
            ContainerInfo(
                id=c["Id"][:SHORT_ID_LENGTH],
                state=c.get("State", ""),
                labels=c.get("Labels") or {},
                networks=_addresses((c.get("NetworkSettings") or {}).get("Networks")),
            )
            for c in containers
        ]

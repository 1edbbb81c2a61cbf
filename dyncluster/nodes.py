"""Allocation and termination of single cluster nodes."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from dyncluster.config import DaemonConfig
from dyncluster.context import RequestContext
from dyncluster.dns import DnsRegistrar
from dyncluster.errors import ContainerNotFound, RegistrationFailure
from dyncluster.runtime import (
    LABEL_CLUSTER_ID,
    LABEL_CREATOR,
    LABEL_INITIAL_SERVER_VERSION,
    LABEL_NODE_NAME,
    ContainerRuntime,
    ContainerSpec,
)
from dyncluster.state import NodeOptions
from dyncluster.versions import NodeVersion, resolve

logger = logging.getLogger(__name__)


def container_name_for(cluster_id: str, node_name: str) -> str:
    return f"dynclsr-{cluster_id}-{node_name}"


class NodeManager:
    """Creates and stops the containers backing cluster nodes."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        daemon_config: Optional[DaemonConfig] = None,
        dns_registrar: Optional[DnsRegistrar] = None,
    ) -> None:
        self.runtime = runtime
        self.config = daemon_config or DaemonConfig()
        self.dns = dns_registrar

    def artifact_url(self, version_info: NodeVersion) -> str:
        """Where the server package for ``version_info`` is published."""
        return version_info.url(release_url=self.config.release_url, build_url=self.config.build_url)

    def allocate_node(
        self,
        ctx: RequestContext,
        cluster_id: str,
        timeout: datetime,
        opts: NodeOptions,
    ) -> str:
        """
        Create and start one node of a cluster.

        A container that was created but failed to start is left in place;
        the caller tears the cluster down.

        Args:
            ctx: Caller identity, recorded as the creator label
            cluster_id: Cluster the node belongs to
            timeout: Expiry of the cluster (informational)
            opts: Node options; ``version_info`` is resolved if missing

        Returns:
            Container id of the new node

        Raises:
            RuntimeFailure: If the runtime fails to create, start or inspect it
        """
        logger.info(
            f"Allocating node {opts.name} for cluster {cluster_id} "
            f"(requested by: {ctx.user}, expires: {timeout.isoformat()})"
        )

        version_info = opts.version_info or resolve(opts.server_version)
        container_name = container_name_for(cluster_id, opts.name)
        logger.info(f"Node {opts.name} runs server {opts.server_version} from {self.artifact_url(version_info)}")

        spec = ContainerSpec(
            name=container_name,
            image=version_info.image_name(self.config.docker_registry),
            network=self.config.network_name,
            labels={
                LABEL_CREATOR: ctx.user,
                LABEL_CLUSTER_ID: cluster_id,
                LABEL_NODE_NAME: opts.name,
                LABEL_INITIAL_SERVER_VERSION: opts.server_version,
            },
            dns_servers=self.config.dns_servers,
        )
        container_id = self.runtime.create(spec)
        self.runtime.start(container_id)

        address = self.runtime.inspect(container_id).get(self.config.network_name)
        if self.dns is not None and address is not None:
            hostname = f"{container_name}.{self.config.dns_domain_suffix}"
            for ip in (address.ipv4, address.ipv6):
                if not ip:
                    continue
                try:
                    self.dns.register(hostname, ip)
                except RegistrationFailure as e:
                    logger.warning(f"{e} {e.body}".rstrip())

        return container_id

    def kill_node(self, ctx: RequestContext, container_id: str) -> None:
        """Stop a node container. A container that is already gone counts as stopped."""
        logger.info(f"Killing node {container_id} (requested by: {ctx.user})")
        try:
            self.runtime.stop(container_id)
        except ContainerNotFound:
            logger.warning(f"Node {container_id} already removed")

"""Cluster reconciliation and multi-node lifecycle operations."""

from __future__ import annotations

import re
import uuid
import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from dyncluster.config import DaemonConfig
from dyncluster.context import RequestContext
from dyncluster.errors import (
    ClusterNotFound,
    DynclusterError,
    Forbidden,
    InvalidRequest,
    MetaNotFound,
)
from dyncluster.meta_store import MetaStore
from dyncluster.nodes import NodeManager
from dyncluster.runtime import (
    LABEL_CLUSTER_ID,
    LABEL_CREATOR,
    LABEL_INITIAL_SERVER_VERSION,
    LABEL_NODE_NAME,
    ContainerInfo,
    NetworkAddress,
)
from dyncluster.state import Cluster, ClusterMeta, ClusterOptions, Node, NodeOptions
from dyncluster.versions import resolve

logger = logging.getLogger(__name__)

T = TypeVar("T")

_HOST_NAME_SEPARATORS = re.compile(r"[^a-z0-9]+")


def new_cluster_id() -> str:
    return uuid.uuid4().hex[:8]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fan_out(fn: Callable[[T], object], items: Iterable[T], name: str) -> Optional[BaseException]:
    """
    Run ``fn`` for every item concurrently and wait for all of them.

    Nothing is cancelled when a worker fails; every result is drained before
    returning.

    Returns:
        The first exception in completion order, or None
    """
    items = list(items)
    if not items:
        return None

    first_error: Optional[BaseException] = None
    with ThreadPoolExecutor(max_workers=len(items), thread_name_prefix=name) as executor:
        futures = {executor.submit(fn, item): item for item in items}
        for future in as_completed(futures):
            error = future.exception()
            if error is None:
                continue
            logger.error(f"{name} failed for {futures[future]}: {error}")
            if first_error is None:
                first_error = error
    return first_error


class ClusterManager:
    """Lifecycle of dynamic clusters built from labeled node containers."""

    def __init__(
        self,
        node_manager: NodeManager,
        meta_store: MetaStore,
        daemon_config: Optional[DaemonConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.nodes = node_manager
        self.runtime = node_manager.runtime
        self.meta_store = meta_store
        self.config = daemon_config or node_manager.config
        self.clock = clock

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def _node_from_container(self, container: ContainerInfo) -> Node:
        # Missing network data must not hide the node
        address = container.networks.get(self.config.network_name) or NetworkAddress()
        return Node(
            container_id=container.id,
            state=container.state,
            name=container.labels.get(LABEL_NODE_NAME, ""),
            initial_server_version=container.labels.get(LABEL_INITIAL_SERVER_VERSION, ""),
            ipv4_address=address.ipv4,
            ipv6_address=address.ipv6,
        )

    def get_all_clusters(self, ctx: RequestContext) -> List[Cluster]:
        """
        Rebuild the clusters visible to the caller from the runtime and metadata store.

        Containers are grouped by their cluster id label. Clusters without a
        metadata record are still listed, with an empty owner and timeout.
        Unless ``ctx.ignore_ownership`` is set, only clusters whose creator is
        the caller are returned.
        """
        groups: Dict[str, List[ContainerInfo]] = defaultdict(list)
        for container in self.runtime.list():
            cluster_id = container.labels.get(LABEL_CLUSTER_ID)
            if cluster_id:
                groups[cluster_id].append(container)

        clusters = []
        for cluster_id in sorted(groups):
            containers = groups[cluster_id]

            creator = ""
            for container in containers:
                creator = container.labels.get(LABEL_CREATOR, "")
                if creator:
                    break
            creator = creator or "unknown"

            # Don't include clusters that the caller doesn't own
            if not ctx.ignore_ownership and creator != ctx.user:
                continue

            try:
                meta: Optional[ClusterMeta] = self.meta_store.get_cluster_meta(cluster_id)
            except MetaNotFound:
                logger.warning(f"Encountered unregistered cluster: {cluster_id}")
                meta = None
            except DynclusterError as e:
                logger.warning(f"Failed to read metadata for cluster {cluster_id}: {e}")
                meta = None

            clusters.append(Cluster(
                id=cluster_id,
                creator=creator,
                owner=meta.owner if meta else "",
                timeout=meta.timeout if meta else None,
                nodes=[self._node_from_container(c) for c in containers],
            ))

        return clusters

    def get_cluster(self, ctx: RequestContext, cluster_id: str) -> Cluster:
        for cluster in self.get_all_clusters(ctx):
            if cluster.id == cluster_id:
                return cluster
        raise ClusterNotFound(cluster_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def _validate(self, opts: ClusterOptions) -> List[NodeOptions]:
        if opts.timeout <= timedelta(0):
            raise InvalidRequest("must specify a valid timeout for the cluster")
        if opts.timeout > self.config.max_cluster_timeout:
            raise InvalidRequest(
                f"cannot allocate clusters for longer than {self.config.max_cluster_timeout}"
            )
        if not opts.nodes:
            raise InvalidRequest("must specify at least a single node for the cluster")
        if len(opts.nodes) > self.config.max_nodes:
            raise InvalidRequest(f"cannot allocate clusters with more than {self.config.max_nodes} nodes")

        nodes = []
        seen: Dict[str, str] = {}
        for idx, node in enumerate(opts.nodes):
            node = node.with_defaults(idx)
            # Node names end up in case-insensitive host names
            key = _HOST_NAME_SEPARATORS.sub("-", node.name.lower()).strip("-")
            if key in seen:
                raise InvalidRequest(f"node names {seen[key]!r} and {node.name!r} are not distinct host names")
            seen[key] = node.name
            if node.version_info is None:
                node.version_info = resolve(node.server_version)
            nodes.append(node)
        return nodes

    def allocate_cluster(self, ctx: RequestContext, opts: ClusterOptions) -> str:
        """
        Allocate a new cluster and all of its nodes.

        If any node fails, the whole cluster is killed and the first node
        error is raised.

        Args:
            ctx: Caller, recorded as creator and owner
            opts: Requested timeout and node list

        Returns:
            The generated cluster id

        Raises:
            InvalidRequest: For out-of-range timeout, node count or a bad version
        """
        logger.info(f"Allocating cluster (requested by: {ctx.user})")

        nodes = self._validate(opts)

        cluster_id = new_cluster_id()
        # TODO: confirm whether opts.timeout should be stored instead of the default window
        timeout = self.clock() + self.config.default_cluster_timeout
        self.meta_store.create_cluster_meta(cluster_id, ClusterMeta(owner=ctx.user, timeout=timeout))

        error = fan_out(
            lambda node: self.nodes.allocate_node(ctx, cluster_id, timeout, node),
            nodes,
            name=f"allocate-{cluster_id}",
        )
        if error is not None:
            try:
                self.kill_cluster(ctx, cluster_id)
            except ClusterNotFound:
                logger.info(f"No containers of cluster {cluster_id} to clean up")
            except Exception as e:
                logger.error(f"Failed to clean up cluster {cluster_id} after allocation error: {e}")
            raise error

        logger.info(f"Allocated cluster {cluster_id} with {len(nodes)} nodes")
        return cluster_id

    def refresh_cluster(self, ctx: RequestContext, cluster_id: str, new_timeout: timedelta) -> ClusterMeta:
        """
        Extend a cluster's expiry and take over its ownership.

        The stored timeout is never moved earlier.
        """
        logger.info(f"Refreshing cluster {cluster_id} (requested by: {ctx.user})")

        self.get_cluster(ctx, cluster_id)

        try:
            new_meta = ClusterMeta(owner=ctx.user, timeout=self.clock() + new_timeout)
        except OverflowError as e:
            raise InvalidRequest(f"timeout {new_timeout} is out of range") from e

        def extend(meta: ClusterMeta) -> ClusterMeta:
            return ClusterMeta(owner=new_meta.owner, timeout=max(meta.timeout, new_meta.timeout))

        try:
            return self.meta_store.update_cluster_meta(cluster_id, extend)
        except MetaNotFound:
            self.meta_store.create_cluster_meta(cluster_id, new_meta)
            return new_meta

    def kill_cluster(self, ctx: RequestContext, cluster_id: str) -> None:
        """
        Stop every node of a cluster.

        Raises:
            ClusterNotFound: If the cluster is not visible to the caller
            Forbidden: If the caller is not the owner and has no override
        """
        logger.info(f"Killing cluster {cluster_id} (requested by: {ctx.user})")

        cluster = self.get_cluster(ctx, cluster_id)
        if not ctx.ignore_ownership and cluster.owner != ctx.user:
            raise Forbidden("cannot kill clusters you don't own")

        error = fan_out(
            lambda node: self.nodes.kill_node(ctx, node.container_id),
            cluster.nodes,
            name=f"kill-{cluster_id}",
        )
        if error is not None:
            raise error

    def kill_all_clusters(self, ctx: RequestContext) -> None:
        logger.info(f"Killing all clusters (requested by: {ctx.user})")

        clusters = self.get_all_clusters(ctx)
        error = fan_out(
            lambda cluster_id: self.kill_cluster(ctx, cluster_id),
            [cluster.id for cluster in clusters],
            name="kill-all",
        )
        if error is not None:
            raise error

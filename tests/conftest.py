import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from dyncluster.clusters import ClusterManager
from dyncluster.config import DaemonConfig
from dyncluster.context import RequestContext
from dyncluster.errors import ContainerNotFound, RuntimeFailure
from dyncluster.meta_store import InMemoryMetaStore
from dyncluster.nodes import NodeManager
from dyncluster.runtime import (
    LABEL_NODE_NAME,
    ContainerInfo,
    ContainerRuntime,
    ContainerSpec,
    NetworkAddress,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FakeRuntime(ContainerRuntime):
    """In-memory runtime with per-node failure injection."""

    def __init__(self, network="macvlan0"):
        self.network = network
        self._lock = threading.Lock()
        self._seq = 0
        self.containers = {}
        self.specs = {}
        self.created = []
        self.started = []
        self.stopped = []
        self.fail_create = set()
        self.fail_start = set()
        self.fail_stop = set()
        self.create_delay = {}
        self.inspect_networks = None

    def add_container(self, container_id, labels, state="running", networks=None):
        with self._lock:
            self.containers[container_id] = ContainerInfo(
                id=container_id,
                state=state,
                labels=dict(labels),
                networks=dict(networks or {}),
            )

    def create(self, spec: ContainerSpec) -> str:
        node_name = spec.labels.get(LABEL_NODE_NAME)
        delay = self.create_delay.get(node_name)
        if delay:
            threading.Event().wait(delay)
        if node_name in self.fail_create:
            with self._lock:
                self.created.append(node_name)
            raise RuntimeFailure(f"create failed for {node_name}")
        with self._lock:
            self._seq += 1
            container_id = f"{self._seq:012x}"
            self.specs[container_id] = spec
            self.containers[container_id] = ContainerInfo(
                id=container_id, state="created", labels=dict(spec.labels)
            )
            self.created.append(node_name)
        return container_id

    def start(self, container_id: str) -> None:
        spec = self.specs[container_id]
        if spec.labels.get(LABEL_NODE_NAME) in self.fail_start:
            raise RuntimeFailure(f"start failed for {container_id}")
        with self._lock:
            self.started.append(container_id)
            info = self.containers[container_id]
            info.state = "running"
            info.networks = {
                self.network: NetworkAddress(ipv4=f"10.0.0.{self._seq}", ipv6=f"fd00::{self._seq}")
            }

    def inspect(self, container_id: str):
        if self.inspect_networks is not None:
            return self.inspect_networks
        with self._lock:
            return dict(self.containers[container_id].networks)

    def stop(self, container_id: str) -> None:
        if container_id in self.fail_stop:
            raise RuntimeFailure(f"stop failed for {container_id}")
        with self._lock:
            if container_id not in self.containers:
                raise ContainerNotFound(container_id)
            del self.containers[container_id]
            self.stopped.append(container_id)

    def list(self):
        with self._lock:
            return list(self.containers.values())


@pytest.fixture
def daemon_config():
    return DaemonConfig(docker_registry="registry.test", network_name="macvlan0")


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def meta_store():
    return InMemoryMetaStore()


@pytest.fixture
def node_manager(runtime, daemon_config):
    return NodeManager(runtime, daemon_config)


@pytest.fixture
def cluster_manager(node_manager, meta_store, daemon_config):
    return ClusterManager(node_manager, meta_store, daemon_config, clock=lambda: NOW)


@pytest.fixture
def alice():
    return RequestContext(user="alice@example.com")


@pytest.fixture
def bob():
    return RequestContext(user="bob@example.com")


@pytest.fixture
def admin():
    return RequestContext(user="ops@example.com", ignore_ownership=True)

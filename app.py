from __future__ import annotations

import logging
from typing import Optional

from dyncluster.api import create_app
from dyncluster.clusters import ClusterManager
from dyncluster.config import DaemonConfig, load_config
from dyncluster.dns import DnsRegistrar
from dyncluster.meta_store import create_meta_store
from dyncluster.nodes import NodeManager
from dyncluster.runtime import ContainerRuntime, create_runtime

logger = logging.getLogger(__name__)


def build_cluster_manager(
	daemon_config: DaemonConfig,
	runtime: Optional[ContainerRuntime] = None,
) -> ClusterManager:
	"""Wire the runtime, metadata store and DNS registrar into a ClusterManager."""
	if runtime is None:
		runtime = create_runtime(daemon_config)

	dns_registrar = None
	if daemon_config.dns_host:
		dns_registrar = DnsRegistrar(
			host=daemon_config.dns_host,
			port=daemon_config.dns_port,
			zone=daemon_config.dns_zone,
			retries=daemon_config.dns_retries,
		)
		logger.info(f"Registering node addresses with DNS service at {daemon_config.dns_host}")
	else:
		logger.info("No DNS service configured, node addresses will not be registered")

	node_manager = NodeManager(runtime, daemon_config, dns_registrar=dns_registrar)
	meta_store = create_meta_store(daemon_config.meta_store_path)
	return ClusterManager(node_manager, meta_store, daemon_config)


def build_app(daemon_config: Optional[DaemonConfig] = None, runtime: Optional[ContainerRuntime] = None):
	"""Build the Flask app from configuration (used as the gunicorn app factory)."""
	if daemon_config is None:
		daemon_config = load_config()
	logging.basicConfig(
		level=daemon_config.log_level.upper(),
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)
	# Suppress lock acquire/release messages from the metadata file store
	logging.getLogger("filelock").setLevel(logging.WARNING)
	logger.info(f"Starting cluster daemon with {daemon_config.runtime} runtime on network {daemon_config.network_name}")

	cluster_manager = build_cluster_manager(daemon_config, runtime=runtime)
	app = create_app(cluster_manager)
	app.config['daemon_config'] = daemon_config
	return app


if __name__ == "__main__":
	build_app().run(host="0.0.0.0", port=8080)

"""Daemon configuration loaded from YAML and environment."""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "DYNCLUSTER_CONFIG"
ENV_PREFIX = "DYNCLUSTER_"

RELEASE_URL = "http://latestbuilds.service.couchbase.com/builds/releases/"
BUILD_URL = "http://latestbuilds.service.couchbase.com/builds/latestbuilds/couchbase-server/"


@dataclass
class DaemonConfig:
    """Settings shared by the runtime adapters, node manager and API."""

    runtime: str = "docker"  # docker | kubernetes
    network_name: str = "macvlan0"
    namespace: str = "dyncluster"
    docker_registry: str = "dockerhub.build.couchbase.com"
    release_url: str = RELEASE_URL
    build_url: str = BUILD_URL
    dns_host: str = ""
    dns_port: int = 80
    dns_zone: str = "couchbase.com"
    dns_domain_suffix: str = "couchbase.com"
    dns_retries: int = 3
    default_cluster_timeout_s: int = 3600
    max_cluster_timeout_s: int = 14 * 24 * 3600
    max_nodes: int = 10
    meta_store_path: str = ""
    pod_start_timeout_s: float = 120.0
    log_level: str = "INFO"

    @property
    def default_cluster_timeout(self) -> timedelta:
        return timedelta(seconds=self.default_cluster_timeout_s)

    @property
    def max_cluster_timeout(self) -> timedelta:
        return timedelta(seconds=self.max_cluster_timeout_s)

    @property
    def dns_servers(self) -> list[str]:
        """DNS servers handed to new nodes; the registrar host doubles as resolver."""
        return [self.dns_host] if self.dns_host else []

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DaemonConfig":
        """
        Build a config from a mapping, coercing values to the field types.

        Unknown keys are ignored with a warning.
        """
        config = cls()
        config.update(data)
        return config

    def update(self, data: Mapping[str, Any]) -> None:
        known = {f.name: f for f in fields(self)}
        for key, value in data.items():
            field_def = known.get(key)
            if field_def is None:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            setattr(self, key, _coerce(value, type(getattr(self, key))))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _coerce(value: Any, target: type) -> Any:
    if value is None:
        return target()
    return target(value)


def _load_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Config file {path} does not contain a mapping, ignoring it")
        return {}
    return data


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DaemonConfig:
    """
    Load daemon configuration.

    Defaults are overridden by the YAML file (``path`` or ``$DYNCLUSTER_CONFIG``)
    and then by ``DYNCLUSTER_<KEY>`` environment variables.

    Args:
        path: Optional path to a YAML config file
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Populated DaemonConfig
    """
    env = os.environ if environ is None else environ
    config = DaemonConfig()

    path = path or env.get(CONFIG_PATH_ENV)
    if path:
        if os.path.exists(path):
            config.update(_load_yaml(path))
            logger.info(f"Loaded config file: {path}")
        else:
            logger.warning(f"Config file not found: {path}")

    overrides = {}
    for f in fields(config):
        value = env.get(ENV_PREFIX + f.name.upper())
        if value is not None:
            overrides[f.name] = value
    config.update(overrides)

    return config

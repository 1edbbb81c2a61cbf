"""Persistence of cluster owner and expiry records."""

from __future__ import annotations

import os
import logging
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator

import yaml
from filelock import FileLock

from dyncluster.errors import DynclusterError, MetaNotFound
from dyncluster.state import ClusterMeta

logger = logging.getLogger(__name__)

MetaUpdater = Callable[[ClusterMeta], ClusterMeta]


class MetaStore(ABC):
    """Keyed ClusterMeta storage with an atomic read-modify-write."""

    @abstractmethod
    def create_cluster_meta(self, cluster_id: str, meta: ClusterMeta) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_cluster_meta(self, cluster_id: str) -> ClusterMeta:
        """Return the stored record or raise MetaNotFound."""
        raise NotImplementedError

    @abstractmethod
    def update_cluster_meta(self, cluster_id: str, updater: MetaUpdater) -> ClusterMeta:
        """
        Apply ``updater`` to the stored record without losing concurrent updates.

        Raises:
            MetaNotFound: If no record exists for ``cluster_id``
        """
        raise NotImplementedError


class InMemoryMetaStore(MetaStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metas: Dict[str, ClusterMeta] = {}

    def create_cluster_meta(self, cluster_id: str, meta: ClusterMeta) -> None:
        with self._lock:
            self._metas[cluster_id] = meta

    def get_cluster_meta(self, cluster_id: str) -> ClusterMeta:
        with self._lock:
            meta = self._metas.get(cluster_id)
        if meta is None:
            raise MetaNotFound(cluster_id)
        return meta

    def update_cluster_meta(self, cluster_id: str, updater: MetaUpdater) -> ClusterMeta:
        with self._lock:
            meta = self._metas.get(cluster_id)
            if meta is None:
                raise MetaNotFound(cluster_id)
            updated = updater(meta)
            self._metas[cluster_id] = updated
            return updated


class YamlMetaStore(MetaStore):
    """
    Metadata kept in a single YAML file.

    Every write rewrites the whole file through a temporary file and
    ``os.replace`` so readers never see a partial document. A lock file next
    to the data file serialises read-modify-write cycles across processes,
    so several gunicorn workers can share one store.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._file_lock = FileLock(f"{self.path}.lock")
        with self._locked():
            if self.path.exists():
                logger.info(f"Using cluster metadata file: {self.path}")
            else:
                self._write({})
                logger.info(f"Created cluster metadata file: {self.path}")

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock, self._file_lock:
            yield

    def _read(self) -> Dict[str, ClusterMeta]:
        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise DynclusterError(f"failed to read metadata file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise DynclusterError(f"metadata file {self.path} does not hold a mapping")

        metas = {}
        for cluster_id, entry in data.items():
            try:
                metas[str(cluster_id)] = ClusterMeta.from_dict(entry)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                # Dropped on the next rewrite
                logger.warning(f"Skipping malformed metadata for cluster {cluster_id}: {e!r}")
        return metas

    def _write(self, metas: Dict[str, ClusterMeta]) -> None:
        data = {cluster_id: meta.to_dict() for cluster_id, meta in metas.items()}
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".meta-", suffix=".yaml")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def create_cluster_meta(self, cluster_id: str, meta: ClusterMeta) -> None:
        with self._locked():
            metas = self._read()
            metas[cluster_id] = meta
            self._write(metas)

    def get_cluster_meta(self, cluster_id: str) -> ClusterMeta:
        with self._locked():
            metas = self._read()
        if cluster_id not in metas:
            raise MetaNotFound(cluster_id)
        return metas[cluster_id]

    def update_cluster_meta(self, cluster_id: str, updater: MetaUpdater) -> ClusterMeta:
        with self._locked():
            metas = self._read()
            if cluster_id not in metas:
                raise MetaNotFound(cluster_id)
            updated = updater(metas[cluster_id])
            metas[cluster_id] = updated
            self._write(metas)
            return updated


def create_meta_store(path: str = "") -> MetaStore:
    """YAML store when a path is configured, in-memory otherwise."""
    if path:
        return YamlMetaStore(path)
    logger.warning("No metadata file configured, cluster metadata will not survive restarts")
    return InMemoryMetaStore()

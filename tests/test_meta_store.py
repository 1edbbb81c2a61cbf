import multiprocessing
import threading
from datetime import datetime, timedelta, timezone

import pytest

from dyncluster.errors import DynclusterError, MetaNotFound
from dyncluster.meta_store import InMemoryMetaStore, YamlMetaStore, create_meta_store
from dyncluster.state import ClusterMeta

T0 = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "yaml"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryMetaStore()
    return YamlMetaStore(str(tmp_path / "meta" / "clusters.yaml"))


def test_create_get(store):
    store.create_cluster_meta("abc12345", ClusterMeta(owner="alice", timeout=T0))
    assert store.get_cluster_meta("abc12345") == ClusterMeta(owner="alice", timeout=T0)


def test_missing_record(store):
    with pytest.raises(MetaNotFound):
        store.get_cluster_meta("nope")
    with pytest.raises(MetaNotFound):
        store.update_cluster_meta("nope", lambda meta: meta)


def test_update_applies_function(store):
    store.create_cluster_meta("abc12345", ClusterMeta(owner="alice", timeout=T0))
    updated = store.update_cluster_meta(
        "abc12345", lambda meta: ClusterMeta(owner="bob", timeout=meta.timeout + timedelta(hours=1))
    )
    assert updated == ClusterMeta(owner="bob", timeout=T0 + timedelta(hours=1))
    assert store.get_cluster_meta("abc12345") == updated


def test_concurrent_updates_are_not_lost(store):
    store.create_cluster_meta("abc12345", ClusterMeta(owner="alice", timeout=T0))

    def bump():
        for _ in range(10):
            store.update_cluster_meta(
                "abc12345", lambda meta: ClusterMeta(owner=meta.owner, timeout=meta.timeout + timedelta(seconds=1))
            )

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.get_cluster_meta("abc12345").timeout == T0 + timedelta(seconds=40)


def test_yaml_store_persists_across_instances(tmp_path):
    path = str(tmp_path / "clusters.yaml")
    YamlMetaStore(path).create_cluster_meta("abc12345", ClusterMeta(owner="alice", timeout=T0))
    assert YamlMetaStore(path).get_cluster_meta("abc12345") == ClusterMeta(owner="alice", timeout=T0)


def test_create_meta_store_selects_backend(tmp_path):
    assert isinstance(create_meta_store(""), InMemoryMetaStore)
    assert isinstance(create_meta_store(str(tmp_path / "m.yaml")), YamlMetaStore)


def _create_many(path, prefix, count):
    store = YamlMetaStore(path)
    for i in range(count):
        store.create_cluster_meta(f"{prefix}{i:04d}", ClusterMeta(owner=prefix, timeout=T0))


def test_yaml_store_shared_between_processes(tmp_path):
    path = str(tmp_path / "clusters.yaml")
    workers = [
        multiprocessing.Process(target=_create_many, args=(path, prefix, 50))
        for prefix in ("a", "b")
    ]
    for p in workers:
        p.start()
    for p in workers:
        p.join(timeout=60)
        assert p.exitcode == 0

    store = YamlMetaStore(path)
    for prefix in ("a", "b"):
        for i in range(50):
            assert store.get_cluster_meta(f"{prefix}{i:04d}").owner == prefix


def test_yaml_store_skips_malformed_records(tmp_path):
    path = tmp_path / "clusters.yaml"
    store = YamlMetaStore(str(path))
    store.create_cluster_meta("good", ClusterMeta(owner="alice", timeout=T0))
    with open(path, "a") as f:
        f.write("bad:\n  owner: bob\nworse: not-a-mapping\n")

    assert store.get_cluster_meta("good") == ClusterMeta(owner="alice", timeout=T0)
    with pytest.raises(MetaNotFound):
        store.get_cluster_meta("bad")

    store.create_cluster_meta("next", ClusterMeta(owner="carol", timeout=T0))
    assert store.get_cluster_meta("good").owner == "alice"
    assert store.get_cluster_meta("next").owner == "carol"


def test_yaml_store_rejects_non_mapping_file(tmp_path):
    path = tmp_path / "clusters.yaml"
    store = YamlMetaStore(str(path))
    path.write_text("- just\n- a list\n")
    with pytest.raises(DynclusterError):
        store.get_cluster_meta("good")

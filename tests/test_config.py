from datetime import timedelta

from dyncluster.config import DaemonConfig, load_config


def test_defaults():
    config = load_config(environ={})
    assert config == DaemonConfig()
    assert config.network_name == "macvlan0"
    assert config.default_cluster_timeout == timedelta(hours=1)
    assert config.max_cluster_timeout == timedelta(days=14)
    assert config.max_nodes == 10
    assert config.dns_servers == []


def test_yaml_then_env_overrides(tmp_path):
    path = tmp_path / "dyncluster.yaml"
    path.write_text(
        "runtime: kubernetes\n"
        "dns_host: 10.1.1.53\n"
        "dns_port: 8053\n"
        "max_nodes: 4\n"
        "bogus_key: 1\n"
    )
    config = load_config(environ={
        "DYNCLUSTER_CONFIG": str(path),
        "DYNCLUSTER_MAX_NODES": "6",
        "DYNCLUSTER_NETWORK_NAME": "clusternet",
    })
    assert config.runtime == "kubernetes"
    assert config.dns_host == "10.1.1.53"
    assert config.dns_port == 8053
    assert config.max_nodes == 6
    assert config.network_name == "clusternet"
    assert config.dns_servers == ["10.1.1.53"]


def test_missing_or_malformed_file_falls_back_to_defaults(tmp_path):
    assert load_config(path=str(tmp_path / "absent.yaml"), environ={}) == DaemonConfig()

    path = tmp_path / "broken.yaml"
    path.write_text("- just\n- a list\n")
    assert load_config(path=str(path), environ={}) == DaemonConfig()


def test_from_dict_coerces_types():
    config = DaemonConfig.from_dict({"default_cluster_timeout_s": "120", "pod_start_timeout_s": 5})
    assert config.default_cluster_timeout == timedelta(minutes=2)
    assert config.pod_start_timeout_s == 5.0
    assert config.to_dict()["default_cluster_timeout_s"] == 120

import pytest

from dyncluster.errors import InvalidRequest, InvalidVersion, UnknownFlavor
from dyncluster.versions import FLAVORS, NodeVersion, flavor_from_version, resolve


@pytest.mark.parametrize("major_minor, flavor", sorted(FLAVORS.items()))
def test_known_buckets_resolve_to_flavor(major_minor, flavor):
    major, minor = major_minor
    assert resolve(f"{major}.{minor}.0").flavor == flavor
    # any minor inside the bucket maps the same way
    assert resolve(f"{major}.{minor + 4}.3").flavor == flavor


@pytest.mark.parametrize("version", ["3.0.0", "3.5.1", "7.5.0", "7.6.2", "8.0.0", "0.1.0"])
def test_unknown_buckets_fail(version):
    with pytest.raises(UnknownFlavor):
        resolve(version)


@pytest.mark.parametrize("version", ["x.5.0", "6.y.1", "6", "", "latest"])
def test_malformed_versions_fail(version):
    with pytest.raises(InvalidVersion):
        resolve(version)


def test_version_errors_are_invalid_requests():
    with pytest.raises(InvalidRequest):
        flavor_from_version("9.0.0")
    with pytest.raises(InvalidRequest):
        flavor_from_version("nope")


def test_build_version():
    nv = resolve("6.5.1-2134")
    assert nv == NodeVersion(version="6.5.1", flavor="mad-hatter", build="2134")
    assert nv.tag_name() == "6.5.1-2134.centos7"
    assert nv.image_name("registry.test") == "registry.test/dynclsr-couchbase_6.5.1-2134.centos7"
    assert nv.package_name() == "couchbase-server-enterprise-6.5.1-2134-centos7.x86_64.rpm"
    assert nv.url(release_url="http://rel/", build_url="http://builds/") == "http://builds/mad-hatter/2134"


def test_release_version():
    nv = resolve("7.0.0")
    assert nv.flavor == "cheshire-cat"
    assert nv.build == ""
    assert nv.tag_name() == "7.0.0.centos7"
    assert nv.package_name() == "couchbase-server-enterprise-7.0.0-centos7.x86_64.rpm"
    assert nv.url(release_url="http://rel/", build_url="http://builds/") == "http://rel/7.0.0"
    assert nv.url().startswith("http://latestbuilds.service.couchbase.com/builds/releases/")


def test_minor_floors_to_lower_bucket():
    assert resolve("6.4.9").flavor == "alice"
    assert resolve("6.6.0").flavor == "mad-hatter"
    assert resolve("4.1.0-100").flavor == "sherlock"

"""Server version parsing and artifact naming."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from dyncluster.config import BUILD_URL, RELEASE_URL
from dyncluster.errors import InvalidVersion, UnknownFlavor

IMAGE_PREFIX = "dynclsr-couchbase_"
PLATFORM_SUFFIX = "centos7"

# (major, minor bucket) -> release codename
FLAVORS: Dict[Tuple[int, int], str] = {
    (4, 0): "sherlock",
    (4, 5): "watson",
    (5, 0): "spock",
    (5, 5): "vulcan",
    (6, 0): "alice",
    (6, 5): "mad-hatter",
    (7, 0): "cheshire-cat",
}


@dataclass(frozen=True)
class NodeVersion:
    """Artifact descriptor for one server version string."""

    version: str
    flavor: str
    build: str = ""

    def tag_name(self) -> str:
        if not self.build:
            return f"{self.version}.{PLATFORM_SUFFIX}"
        return f"{self.version}-{self.build}.{PLATFORM_SUFFIX}"

    def image_name(self, registry: str) -> str:
        return f"{registry}/{IMAGE_PREFIX}{self.tag_name()}"

    def package_name(self) -> str:
        if not self.build:
            return f"couchbase-server-enterprise-{self.version}-{PLATFORM_SUFFIX}.x86_64.rpm"
        return f"couchbase-server-enterprise-{self.version}-{self.build}-{PLATFORM_SUFFIX}.x86_64.rpm"

    def url(self, release_url: str = RELEASE_URL, build_url: str = BUILD_URL) -> str:
        # Without a build number the target is a GA release
        if not self.build:
            return f"{release_url}{self.version}"
        return f"{build_url}{self.flavor}/{self.build}"


def flavor_from_version(version: str) -> str:
    """
    Map a dotted version to its release codename.

    The minor component is floored to 0 or 5 before the lookup, so 6.6.2
    resolves the same as 6.5.0.

    Raises:
        InvalidVersion: If major or minor is missing or not numeric
        UnknownFlavor: If the major/minor bucket is not known
    """
    parts = version.split(".")
    if len(parts) < 2:
        raise InvalidVersion(f"version {version!r} has no minor component")

    try:
        major = int(parts[0])
    except ValueError:
        raise InvalidVersion(f"could not convert major of {version!r} to int") from None
    try:
        minor = int(parts[1])
    except ValueError:
        raise InvalidVersion(f"could not convert minor of {version!r} to int") from None

    bucket = 5 if minor >= 5 else 0
    flavor = FLAVORS.get((major, bucket))
    if flavor is None:
        raise UnknownFlavor(f"{major}.{bucket} is not a recognised flavor")
    return flavor


def resolve(version: str) -> NodeVersion:
    """
    Parse ``<semver>[-<build>]`` into a NodeVersion.

    Args:
        version: Requested server version, e.g. ``6.5.1-2134`` or ``7.0.0``

    Returns:
        Resolved NodeVersion
    """
    base, _, build = version.partition("-")
    return NodeVersion(version=base, flavor=flavor_from_version(base), build=build)

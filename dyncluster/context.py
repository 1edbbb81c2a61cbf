"""Caller identity passed to every cluster operation."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """
    Identity of the caller as established by the authenticating proxy.

    ``ignore_ownership`` lets administrative callers see and kill clusters
    created by other users.
    """

    user: str
    ignore_ownership: bool = False

from __future__ import annotations

import logging
from typing import Iterable

from image_sync.models import Both, Item, MatchResult, OnlyLocal, OnlyRemote

logger = logging.getLogger(__name__)


def _index(items: Iterable[Item], replica: str) -> dict[str, Item]:
    lookup: dict[str, Item] = {}
    for item in items:
        if item.logical_name in lookup:
            logger.warning("Duplicate %s item %r ignored", replica, item.logical_name)
            continue
        lookup[item.logical_name] = item
    return lookup


def match(local_snapshot: Iterable[Item], remote_snapshot: Iterable[Item]) -> list[MatchResult]:
    """Pair local and remote items by logical name.

    Names are compared with exact string equality (case-sensitive, no Unicode
    normalization). Results are ordered by logical name.
    """
    local = _index(local_snapshot, "local")
    remote = _index(remote_snapshot, "remote")

    results: list[MatchResult] = []
    for name in sorted(local.keys() | remote.keys()):
        local_item = local.get(name)
        remote_item = remote.get(name)
        if local_item is not None and remote_item is not None:
            results.append(Both(local=local_item, remote=remote_item))
        elif local_item is not None:
            results.append(OnlyLocal(local_item))
        else:
            results.append(OnlyRemote(remote_item))
    return results

"""Conflict resolution rules for matched and one-sided items.

Two separate questions are answered here:

* who wins when both replicas hold the same logical name (``resolve``), and
* who is the source of truth for additions and removals (``orphan_action``).

Getting the second table wrong silently deletes user data, so it is spelled
out as data rather than branching logic.
"""
from __future__ import annotations

import logging

from image_sync.models import (
    Action,
    Both,
    Item,
    OnlyLocal,
    OnlyRemote,
    OrphanAction,
    Replica,
    ResolutionDecision,
    Strategy,
)
from image_sync.utils.timestamps import same_instant, to_millis

logger = logging.getLogger(__name__)

# strategy -> (action for OnlyLocal, action for OnlyRemote)
ORPHAN_ACTIONS: dict[Strategy, tuple[OrphanAction, OrphanAction]] = {
    Strategy.SERVER_ALWAYS_WINS: (OrphanAction.DELETE_LOCAL, OrphanAction.DOWNLOAD),
    Strategy.LOCAL_ALWAYS_WINS: (OrphanAction.UPLOAD, OrphanAction.DELETE_REMOTE),
    Strategy.LAST_WRITE_WINS: (OrphanAction.UPLOAD, OrphanAction.DOWNLOAD),
}


def is_equivalent(local: Item, remote: Item) -> bool:
    """Size + mtime equivalence. Corrupted bytes are not compared by size."""
    if not same_instant(local.modified_at, remote.modified_at):
        return False
    if local.corrupted or remote.corrupted:
        return True
    return local.size_bytes == remote.size_bytes


def _same_content_size(local: Item, remote: Item) -> bool:
    return not (local.corrupted or remote.corrupted) and local.size_bytes == remote.size_bytes


def resolve(pair: Both, strategy: Strategy) -> ResolutionDecision:
    equivalent = is_equivalent(pair.local, pair.remote)

    if strategy is Strategy.SERVER_ALWAYS_WINS:
        return ResolutionDecision(
            winner=Replica.REMOTE,
            action=Action.NONE if equivalent else Action.UPDATE,
            conflicting=not equivalent,
        )

    if strategy is Strategy.LOCAL_ALWAYS_WINS:
        return ResolutionDecision(
            winner=Replica.LOCAL,
            action=Action.NONE if equivalent else Action.UPDATE,
            conflicting=not equivalent,
        )

    if strategy is Strategy.LAST_WRITE_WINS:
        return _last_write_wins(pair, equivalent)

    raise ValueError(f"Unknown strategy: {strategy!r}")


def _last_write_wins(pair: Both, equivalent: bool) -> ResolutionDecision:
    local_time = pair.local.modified_at
    remote_time = pair.remote.modified_at

    if local_time is None:
        # No local timestamp: transfer the remote version instead of aborting.
        logger.info("No local mtime for %r; falling back to the remote version", pair.name)
        return ResolutionDecision(winner=Replica.REMOTE, action=Action.UPDATE, conflicting=True)

    if remote_time is None:
        if _same_content_size(pair.local, pair.remote):
            # The catalog never stamps this item; re-uploading would repeat every pass.
            return ResolutionDecision(winner=None, action=Action.NONE, conflicting=False)
        logger.info("No remote mtime for %r; keeping the local version", pair.name)
        return ResolutionDecision(winner=Replica.LOCAL, action=Action.UPDATE, conflicting=True)

    local_ms = to_millis(local_time)
    remote_ms = to_millis(remote_time)
    if local_ms > remote_ms:
        return ResolutionDecision(winner=Replica.LOCAL, action=Action.UPDATE, conflicting=True)
    if remote_ms > local_ms:
        return ResolutionDecision(winner=Replica.REMOTE, action=Action.UPDATE, conflicting=True)
    return ResolutionDecision(winner=None, action=Action.NONE, conflicting=not equivalent)


def orphan_action(match: OnlyLocal | OnlyRemote, strategy: Strategy) -> OrphanAction:
    local_action, remote_action = ORPHAN_ACTIONS[strategy]
    if isinstance(match, OnlyLocal):
        return local_action
    if isinstance(match, OnlyRemote):
        return remote_action
    raise TypeError(f"Not a one-sided match: {match!r}")

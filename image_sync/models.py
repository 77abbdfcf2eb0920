from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Iterator, Optional, Union

from image_sync.utils.timestamps import format_timestamp, parse_timestamp, utc_now


class Replica(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class Strategy(str, Enum):
    LAST_WRITE_WINS = "last_write_wins"
    SERVER_ALWAYS_WINS = "server_always_wins"
    LOCAL_ALWAYS_WINS = "local_always_wins"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class Direction(str, Enum):
    PULL = "pull"
    PUSH = "push"


class Action(str, Enum):
    NONE = "none"
    UPDATE = "update"


class OrphanAction(str, Enum):
    DOWNLOAD = "download"
    UPLOAD = "upload"
    DELETE_LOCAL = "delete_local"
    DELETE_REMOTE = "delete_remote"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ActionKind(str, Enum):
    DOWNLOAD = "download"
    UPLOAD = "upload"
    REPLACE_LOCAL = "replace_local"
    REPLACE_REMOTE = "replace_remote"
    DELETE_LOCAL = "delete_local"
    DELETE_REMOTE = "delete_remote"


@dataclass(frozen=True, slots=True)
class Item:
    """A logical image as seen by one replica during a pass."""

    logical_name: str
    storage_name: str
    size_bytes: int
    modified_at: Optional[datetime]
    corrupted: bool = False
    source_replica: Replica = Replica.LOCAL
    item_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ReplicaSnapshot:
    replica: Replica
    items: tuple[Item, ...]
    captured_at: datetime = field(default_factory=utc_now)

    def __iter__(self) -> Iterator[Item]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True, slots=True)
class OnlyLocal:
    item: Item

    @property
    def name(self) -> str:
        return self.item.logical_name


@dataclass(frozen=True, slots=True)
class OnlyRemote:
    item: Item

    @property
    def name(self) -> str:
        return self.item.logical_name


@dataclass(frozen=True, slots=True)
class Both:
    local: Item
    remote: Item

    @property
    def name(self) -> str:
        return self.local.logical_name


MatchResult = Union[OnlyLocal, OnlyRemote, Both]


@dataclass(frozen=True, slots=True)
class ResolutionDecision:
    winner: Optional[Replica]
    action: Action
    conflicting: bool = False


# Planned actions. Each kind lands in exactly one result bucket.


@dataclass(frozen=True, slots=True)
class Download:
    kind: ClassVar[ActionKind] = ActionKind.DOWNLOAD
    remote: Item

    @property
    def name(self) -> str:
        return self.remote.logical_name


@dataclass(frozen=True, slots=True)
class Upload:
    kind: ClassVar[ActionKind] = ActionKind.UPLOAD
    local: Item

    @property
    def name(self) -> str:
        return self.local.logical_name


@dataclass(frozen=True, slots=True)
class ReplaceLocal:
    kind: ClassVar[ActionKind] = ActionKind.REPLACE_LOCAL
    local: Item
    remote: Item

    @property
    def name(self) -> str:
        return self.local.logical_name


@dataclass(frozen=True, slots=True)
class ReplaceRemote:
    kind: ClassVar[ActionKind] = ActionKind.REPLACE_REMOTE
    local: Item
    remote: Item

    @property
    def name(self) -> str:
        return self.local.logical_name


@dataclass(frozen=True, slots=True)
class DeleteLocal:
    kind: ClassVar[ActionKind] = ActionKind.DELETE_LOCAL
    local: Item

    @property
    def name(self) -> str:
        return self.local.logical_name


@dataclass(frozen=True, slots=True)
class DeleteRemote:
    kind: ClassVar[ActionKind] = ActionKind.DELETE_REMOTE
    remote: Item

    @property
    def name(self) -> str:
        return self.remote.logical_name


PlannedAction = Union[Download, Upload, ReplaceLocal, ReplaceRemote, DeleteLocal, DeleteRemote]

BUCKETS: dict[ActionKind, str] = {
    ActionKind.DOWNLOAD: "transferred",
    ActionKind.UPLOAD: "transferred",
    ActionKind.REPLACE_LOCAL: "updated",
    ActionKind.REPLACE_REMOTE: "updated",
    ActionKind.DELETE_LOCAL: "deleted",
    ActionKind.DELETE_REMOTE: "deleted",
}


@dataclass(slots=True)
class ItemOutcome:
    name: str
    action: ActionKind
    succeeded: bool
    error: Optional[str] = None
    # Item state after a successful action; used to refresh the catalog view.
    result_item: Optional[Item] = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "action": self.action.value, "error": self.error}


@dataclass(slots=True)
class ConflictDetail:
    name: str
    winner: Optional[Replica]
    local_modified_at: Optional[datetime]
    remote_modified_at: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "winner": self.winner.value if self.winner else None,
            "local_modified_at": format_timestamp(self.local_modified_at),
            "remote_modified_at": format_timestamp(self.remote_modified_at),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ConflictDetail":
        winner = payload.get("winner")
        return cls(
            name=payload["name"],
            winner=Replica(winner) if winner else None,
            local_modified_at=parse_timestamp(payload.get("local_modified_at")),
            remote_modified_at=parse_timestamp(payload.get("remote_modified_at")),
        )


@dataclass(slots=True)
class SyncLists:
    transferred: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[ItemOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transferred": list(self.transferred),
            "updated": list(self.updated),
            "deleted": list(self.deleted),
            "failed": [outcome.to_dict() for outcome in self.failed],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SyncLists":
        return cls(
            transferred=list(payload.get("transferred", [])),
            updated=list(payload.get("updated", [])),
            deleted=list(payload.get("deleted", [])),
            failed=[
                ItemOutcome(
                    name=failure["name"],
                    action=ActionKind(failure["action"]),
                    succeeded=False,
                    error=failure.get("error"),
                )
                for failure in payload.get("failed", [])
            ],
        )


@dataclass(slots=True)
class SyncLogEntry:
    """Append-only audit record for one directional half-operation."""

    direction: Direction
    strategy: Strategy
    status: SyncStatus
    timestamp: datetime = field(default_factory=utc_now)
    item_lists: SyncLists = field(default_factory=SyncLists)
    conflicts_resolved: int = 0
    conflict_details: list[ConflictDetail] = field(default_factory=list)
    primary_action: Optional[ActionKind] = None
    error_detail: Optional[str] = None
    id: Optional[int] = None

    @property
    def counts(self) -> dict[str, int]:
        return {
            "transferred": len(self.item_lists.transferred),
            "updated": len(self.item_lists.updated),
            "deleted": len(self.item_lists.deleted),
            "conflicts_resolved": self.conflicts_resolved,
            "failed": len(self.item_lists.failed),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "direction": self.direction.value,
            "strategy": self.strategy.value,
            "status": self.status.value,
            "timestamp": format_timestamp(self.timestamp),
            "counts": self.counts,
            "item_lists": self.item_lists.to_dict(),
            "conflict_details": [detail.to_dict() for detail in self.conflict_details],
            "primary_action": self.primary_action.value if self.primary_action else None,
            "error_detail": self.error_detail,
            "message": f"{self.direction.value.title()} with {self.strategy.label} strategy",
        }


@dataclass(slots=True)
class SyncResult:
    direction: Direction
    strategy: Strategy
    status: SyncStatus
    item_lists: SyncLists
    conflicts_resolved: int = 0
    conflict_details: list[ConflictDetail] = field(default_factory=list)

    @property
    def transferred_count(self) -> int:
        return len(self.item_lists.transferred)

    @property
    def updated_count(self) -> int:
        return len(self.item_lists.updated)

    @property
    def deleted_count(self) -> int:
        return len(self.item_lists.deleted)

    @property
    def failed_count(self) -> int:
        return len(self.item_lists.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "strategy": self.strategy.value,
            "status": self.status.value,
            "transferred_count": self.transferred_count,
            "updated_count": self.updated_count,
            "deleted_count": self.deleted_count,
            "failed_count": self.failed_count,
            "conflicts_resolved": self.conflicts_resolved,
            "item_lists": self.item_lists.to_dict(),
            "conflict_details": [detail.to_dict() for detail in self.conflict_details],
        }


class PullResult(SyncResult):
    @property
    def pulled_count(self) -> int:
        return self.transferred_count


class PushResult(SyncResult):
    @property
    def pushed_count(self) -> int:
        return self.transferred_count


@dataclass(slots=True)
class SyncRunResult:
    strategy: Strategy
    pull: Optional[PullResult] = None
    push: Optional[PushResult] = None

    @property
    def results(self) -> list[SyncResult]:
        return [result for result in (self.pull, self.push) if result is not None]


@dataclass(slots=True)
class SyncStatusSummary:
    local_count: int
    remote_count: int
    last_sync_time: Optional[datetime]

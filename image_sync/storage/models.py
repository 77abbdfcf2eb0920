from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Index, Integer, String, UniqueConstraint, func
from sqlalchemy import DateTime as _DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CatalogItem(Base):
    """Last known state of one logical image on one replica."""

    __tablename__ = "catalog_items"
    __table_args__ = (
        UniqueConstraint("replica", "logical_name", name="uq_catalog_replica_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    replica: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    logical_name: Mapped[str] = mapped_column(String(512), nullable=False)
    storage_name: Mapped[str] = mapped_column(String(512), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    modified_at: Mapped[Optional[datetime]] = mapped_column(
        _DateTime(timezone=True), nullable=True
    )
    corrupted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    remote_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        _DateTime(timezone=True), server_default=func.now()
    )


class SyncLog(Base):
    """One row per pull or push; never updated after insert."""

    __tablename__ = "sync_logs"
    __table_args__ = (Index("ix_sync_logs_timestamp", "timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    strategy: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(_DateTime(timezone=True), nullable=False)
    transferred: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deleted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conflicts_resolved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    primary_action: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    error_detail: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

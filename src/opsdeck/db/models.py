"""
opsdeck.db.models

Persistence schema for the control-plane service.

Responsibilities:
- ConnectionProfile: saved Oracle / S3 / Git host connection (encrypted payload).
- Job: long-running comparison or backup job, checkpointed while it runs.
- JobLog: append-only, human-readable progress lines for a job.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Index, String, Text, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column

from opsdeck.db.base import Base


def _utcnow() -> datetime:
    return datetime.utcnow()


class ConnectionKind(enum.StrEnum):
    oracle = "oracle"
    s3 = "s3"
    gitea = "gitea"


class JobKind(enum.StrEnum):
    two_way = "TWO_WAY"
    three_way = "THREE_WAY"
    backup = "BACKUP"


class JobStatus(enum.StrEnum):
    starting = "STARTING"
    preparing = "PREPARING"
    running = "RUNNING"
    completed = "COMPLETED"
    error = "ERROR"
    cancelled = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.error, JobStatus.cancelled)


class ConnectionProfile(Base):
    __tablename__ = "connection_profiles"

    # Ids are unique per kind only.
    kind: Mapped[ConnectionKind] = mapped_column(Enum(ConnectionKind), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)

    # Fernet token of the full profile JSON (credentials included).
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)


class Job(Base):
    __tablename__ = "jobs"

    # Human-readable ids such as `twoway_20240101120000_ab12c`.
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[JobKind] = mapped_column(Enum(JobKind), nullable=False, index=True)
    status: Mapped[JobStatus] = mapped_column(Enum(JobStatus), nullable=False, index=True)

    progress: Mapped[int] = mapped_column(nullable=False, default=0)
    total: Mapped[int] = mapped_column(nullable=False, default=0)
    total_tasks: Mapped[int] = mapped_column(nullable=False, default=0)

    summary: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    # Checkpointed pipeline state (no credentials; see services.comparison_service).
    state: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    result_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)


class JobLog(Base):
    __tablename__ = "job_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    job_id: Mapped[str] = mapped_column(String(64), ForeignKey("jobs.id"), nullable=False)
    seq: Mapped[int] = mapped_column(nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    __table_args__ = (Index("ix_job_logs_job_seq", "job_id", "seq"),)

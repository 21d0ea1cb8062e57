from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Run(Base):
    __tablename__ = "runs"
    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    pipeline: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    scope: Mapped[str] = mapped_column(sa.Text, nullable=False, index=True)
    event: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)  # running|success|failure|cancelled
    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=now_utc, nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    jobs: Mapped[list["Job"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="Job.position",
    )


class Job(Base):
    __tablename__ = "jobs"
    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    run_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("runs.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    job_name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)  # success|failed|cancelled
    failed_step: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    outcomes: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=now_utc, nullable=False)

    run: Mapped[Run] = relationship(back_populates="jobs")

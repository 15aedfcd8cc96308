"""
Progress tables.

- progress_records: one row per (student, content, kind), version-checked updates
- assessment_attempts: append-only, unique per (assessment, student, attempt_number)
- accessibility_snapshots: last computed accessible set per (student, course), version-checked
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType


class ProgressRecordRow(Base):
    __tablename__ = "progress_records"
    __table_args__ = (
        UniqueConstraint("student_id", "content_id", "content_kind", name="uq_progress_student_content"),
        Index("ix_progress_student_course", "student_id", "course_id"),
        Index("ix_progress_student_accessed", "student_id", "last_accessed"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(Text, nullable=False)
    content_id: Mapped[str] = mapped_column(Text, nullable=False)
    content_kind: Mapped[str] = mapped_column(Text, nullable=False)
    course_id: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="not_started")
    completion_percentage: Mapped[float] = mapped_column(Float, default=0.0)
    best_score: Mapped[float | None] = mapped_column(Float)
    time_spent: Mapped[int] = mapped_column(Integer, default=0)
    attempts_count: Mapped[int] = mapped_column(Integer, default=0)
    last_accessed: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class AssessmentAttemptRow(Base):
    __tablename__ = "assessment_attempts"
    __table_args__ = (
        UniqueConstraint(
            "assessment_id", "student_id", "attempt_number", name="uq_attempt_number"
        ),
        Index("ix_attempts_student_submitted", "student_id", "submitted_at"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    assessment_id: Mapped[str] = mapped_column(Text, nullable=False)
    student_id: Mapped[str] = mapped_column(Text, nullable=False)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    answers: Mapped[list] = mapped_column(JSONType, default=list)
    time_spent: Mapped[int | None] = mapped_column(Integer)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AccessibilitySnapshotRow(Base):
    __tablename__ = "accessibility_snapshots"

    student_id: Mapped[str] = mapped_column(Text, primary_key=True)
    course_id: Mapped[str] = mapped_column(Text, primary_key=True)
    content_ids: Mapped[list] = mapped_column(JSONType, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

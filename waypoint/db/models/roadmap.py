"""
Roadmap table.

Items are stored as an ordered JSON array; the whole roadmap is rewritten in
one version-checked UPDATE. A partial unique index allows at most one active
roadmap per student.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType


class RoadmapRow(Base):
    __tablename__ = "roadmaps"
    __table_args__ = (
        Index(
            "uq_roadmaps_one_active",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    student_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")
    rationale: Mapped[str] = mapped_column(Text, default="")
    items: Mapped[list] = mapped_column(JSONType, default=list)
    knowledge_gaps: Mapped[list] = mapped_column(JSONType, default=list)
    target_skills: Mapped[list] = mapped_column(JSONType, default=list)
    time_constraints: Mapped[dict | None] = mapped_column(JSONType)
    pace_factor: Mapped[float] = mapped_column(Float, default=1.0)
    total_estimated_time: Mapped[int] = mapped_column(Integer, default=0)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

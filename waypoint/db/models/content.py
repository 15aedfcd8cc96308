"""
Content and enrollment tables.

Lesson prerequisites are stored as an ordered JSON array of lesson ids so
the declared order survives a round trip.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    tags: Mapped[list] = mapped_column(JSONType, default=list)
    difficulty: Mapped[str] = mapped_column(Text, default="beginner")
    estimated_time: Mapped[int] = mapped_column(Integer, default=0)
    published: Mapped[bool] = mapped_column(Boolean, default=False)
    final_assessment_id: Mapped[str | None] = mapped_column(Text)


class LessonRow(Base):
    __tablename__ = "lessons"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    prerequisites: Mapped[list] = mapped_column(JSONType, default=list)
    learning_objectives: Mapped[list] = mapped_column(JSONType, default=list)
    estimated_time: Mapped[int] = mapped_column(Integer, default=60)
    difficulty: Mapped[str] = mapped_column(Text, default="beginner")
    published: Mapped[bool] = mapped_column(Boolean, default=False)
    assessment_id: Mapped[str | None] = mapped_column(Text)


class AssessmentRow(Base):
    """An assessment bound to exactly one lesson or one course."""

    __tablename__ = "assessments"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    lesson_id: Mapped[str | None] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"))
    course_id: Mapped[str | None] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"))
    # [{"id": ..., "topics": [...], "points": 1, "text": ...}]
    questions: Mapped[list] = mapped_column(JSONType, default=list)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=False)
    minimum_passing_score: Mapped[float] = mapped_column(Float, default=70.0)
    max_attempts: Mapped[int | None] = mapped_column(Integer)
    estimated_time: Mapped[int] = mapped_column(Integer, default=30)


class EnrollmentRow(Base):
    __tablename__ = "enrollments"

    student_id: Mapped[str] = mapped_column(Text, primary_key=True)
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True
    )
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

from datetime import date, datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from shared.database import Base


def new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Quiz(Base):
    __tablename__ = "quiz"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    trainer_id: Mapped[str] = mapped_column(String(32), index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    subject: Mapped[str] = mapped_column(String(120))

    scheduled_date: Mapped[date] = mapped_column(Date)
    start_time: Mapped[str] = mapped_column(String(5))   # HH:MM
    end_time: Mapped[str] = mapped_column(String(5))     # HH:MM
    duration: Mapped[int] = mapped_column(Integer)       # minutes
    scheduled_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    questions: Mapped[list] = mapped_column(JSON, default=list)
    total_marks: Mapped[int] = mapped_column(Integer)
    passing_marks: Mapped[int] = mapped_column(Integer)

    batch_type: Mapped[str] = mapped_column(String(20), default="noncrt")  # noncrt/placement/both
    assigned_batches: Mapped[list] = mapped_column(JSON, default=list)
    assigned_placement_batches: Mapped[list] = mapped_column(JSON, default=list)

    shuffle_questions: Mapped[bool] = mapped_column(Boolean, default=False)
    show_results_immediately: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_retake: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), default="active")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    submissions: Mapped[list["QuizSubmission"]] = relationship(
        back_populates="quiz", cascade="all, delete-orphan",
    )


class QuizSubmission(Base):
    __tablename__ = "quiz_submission"
    __table_args__ = (UniqueConstraint("quiz_id", "student_id", name="uq_submission_quiz_student"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quiz_id: Mapped[str] = mapped_column(String(32), ForeignKey("quiz.id", ondelete="CASCADE"), index=True)
    student_id: Mapped[str] = mapped_column(String(32), index=True)
    answers: Mapped[list] = mapped_column(JSON, default=list)  # evaluated per-question answers
    score: Mapped[float] = mapped_column(Float, default=0)
    percentage: Mapped[float] = mapped_column(Float, default=0)
    time_spent: Mapped[int] = mapped_column(Integer, default=0)  # seconds
    performance_category: Mapped[str] = mapped_column(String(10), default="red")
    attempt_number: Mapped[int] = mapped_column(Integer, default=1)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    quiz: Mapped[Quiz] = relationship(back_populates="submissions")


# Mirrors of stores owned by the batch/student/trainer services. This service only reads them.

class Batch(Base):
    __tablename__ = "batch"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    batch_number: Mapped[str] = mapped_column(String(60), index=True, default="")
    name: Mapped[str] = mapped_column(String(120), default="")
    college: Mapped[str] = mapped_column(String(20), default="")
    is_crt: Mapped[bool] = mapped_column(Boolean, default=False)
    trainer_id: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)


class PlacementTrainingBatch(Base):
    __tablename__ = "placement_training_batch"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    batch_number: Mapped[str] = mapped_column(String(60), index=True)
    tech_stack: Mapped[str] = mapped_column(String(60), default="")
    year: Mapped[str] = mapped_column(String(10), default="")
    colleges: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    trainers: Mapped[list["PlacementBatchTrainer"]] = relationship(back_populates="batch")


class PlacementBatchTrainer(Base):
    __tablename__ = "placement_batch_trainer"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    batch_id: Mapped[str] = mapped_column(String(32), ForeignKey("placement_training_batch.id"), index=True)
    trainer_id: Mapped[str] = mapped_column(String(32), index=True)
    subject: Mapped[str] = mapped_column(String(120), default="")
    time_slot: Mapped[str] = mapped_column(String(20), default="morning")  # morning/afternoon/evening

    batch: Mapped[PlacementTrainingBatch] = relationship(back_populates="trainers")


class Student(Base):
    __tablename__ = "student"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(120), default="")
    roll_no: Mapped[str] = mapped_column(String(40), default="")
    email: Mapped[str] = mapped_column(String(255), default="")
    college: Mapped[str] = mapped_column(String(20), default="")
    branch: Mapped[str] = mapped_column(String(60), default="")
    batch_id: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    placement_training_batch_id: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)


class Trainer(Base):
    __tablename__ = "trainer"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(120), default="")
    subject_dealing: Mapped[str | None] = mapped_column(String(120), nullable=True)

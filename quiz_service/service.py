import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from . import crud, grading, resolver, scheduling
from .access import StudentAccess, check_access, is_targeted
from .config import Settings
from .errors import (
    AccessDeniedError, AlreadySubmittedError, ForbiddenRoleError, NotFoundError,
    SubmissionConflictError, ValidationError,
)
from .models import Quiz
from .notifications import Notifier
from .schemas import QuizCreateIn, QuizUpdateIn, SubmitQuizIn, dump_questions, parse_questions

logger = logging.getLogger("quiz-service")

NOTIFICATION_CATEGORY = "Available Quizzes"
NOTIFICATION_TYPE = "quiz"

SCHEDULE_FIELDS = ("scheduled_date", "start_time", "end_time", "scheduled_start", "scheduled_end")
BATCH_FIELDS = ("batch_type", "assigned_batches", "assigned_placement_batches")
PLAIN_FIELDS = (
    "title", "description", "subject", "duration", "passing_marks",
    "shuffle_questions", "show_results_immediately", "allow_retake", "status",
)


@dataclass(frozen=True)
class CallerContext:
    id: str
    role: str
    name: str = ""
    subject: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuizService:
    def __init__(self, settings: Settings, notifier: Notifier):
        self.settings = settings
        self.notifier = notifier

    # -------------------------
    # Helpers
    # -------------------------

    @staticmethod
    def _require_role(caller: CallerContext, role: str) -> None:
        if caller.role != role:
            raise ForbiddenRoleError(f"Only a {role} can do this")

    def _validate_subject(self, db: Session, caller: CallerContext, subject: str) -> None:
        trainer_subject = caller.subject or crud.find_trainer_subject(db, caller.id)
        if not trainer_subject or trainer_subject != subject:
            raise ValidationError("Invalid subject for this trainer")

    def _owned_quiz(self, db: Session, caller: CallerContext, quiz_id: str) -> Quiz:
        self._require_role(caller, "trainer")
        quiz = crud.get_trainer_quiz(db, caller.id, quiz_id)
        if not quiz:
            raise NotFoundError()
        return quiz

    def _resolve_batches(self, db: Session, requested_type: str | None, regular: list[str],
                         placement: list[str]) -> resolver.BatchAssignment:
        assignment = resolver.resolve_assignment(db, requested_type, regular, placement)
        if assignment.unresolved and self.settings.strict_batch_resolution:
            raise ValidationError(
                "Could not resolve batch(es): " + ", ".join(assignment.unresolved)
            )
        return assignment

    def _student_access(self, db: Session, caller: CallerContext) -> StudentAccess:
        self._require_role(caller, "student")
        student = crud.get_student(db, caller.id)
        if not student:
            raise NotFoundError("Student not found")
        return StudentAccess(
            student_id=student.id,
            batch_id=student.batch_id,
            placement_batch_id=student.placement_training_batch_id,
        )

    def _actor(self, db: Session, caller: CallerContext) -> dict[str, Any]:
        name = caller.name
        if not name:
            trainer = crud.get_trainer(db, caller.id)
            name = trainer.name if trainer and trainer.name else "Trainer"
        return {"id": caller.id, "name": name, "role": caller.role}

    async def _notify_each(self, batch_ids: list[str], title: str, message: str,
                           actor: dict[str, Any]) -> None:
        await asyncio.gather(*[
            self.notifier.notify_batch(
                batch_id, title=title, message=message, category=NOTIFICATION_CATEGORY,
                type=NOTIFICATION_TYPE, actor=actor,
            )
            for batch_id in batch_ids
        ])

    # -------------------------
    # Trainer operations
    # -------------------------

    def list_trainer_batches(self, db: Session, caller: CallerContext) -> dict[str, list[dict]]:
        self._require_role(caller, "trainer")
        regular = [
            {
                "id": b.id,
                "name": b.batch_number or b.name or f"Batch {b.id}",
                "batch_number": b.batch_number,
                "is_crt": b.is_crt,
                "student_count": count,
                "type": "regular",
            }
            for b, count in crud.trainer_regular_batches(db, caller.id)
        ]
        placement = [
            {
                "id": b.id,
                "name": f"{b.batch_number} - {b.tech_stack} ({b.year})",
                "batch_number": b.batch_number,
                "tech_stack": b.tech_stack,
                "year": b.year,
                "colleges": list(b.colleges or []),
                "student_count": count,
                "type": "placement",
            }
            for b, count in crud.trainer_placement_batches(db, caller.id)
        ]
        return {"regular": regular, "placement": placement, "all": regular + placement}

    def list_trainer_subjects(self, db: Session, caller: CallerContext) -> list[str]:
        self._require_role(caller, "trainer")
        subject = crud.find_trainer_subject(db, caller.id)
        return [subject] if subject else []

    async def create_quiz(self, db: Session, caller: CallerContext, payload: QuizCreateIn) -> Quiz:
        self._require_role(caller, "trainer")
        self._validate_subject(db, caller, payload.subject)

        assignment = self._resolve_batches(
            db, payload.batch_type, payload.assigned_batches, payload.assigned_placement_batches
        )
        start, end = scheduling.compute_window(
            payload.scheduled_date, payload.start_time, payload.end_time,
            payload.scheduled_start, payload.scheduled_end,
        )

        quiz = crud.create_quiz(db, {
            "trainer_id": caller.id,
            "title": payload.title,
            "description": payload.description,
            "subject": payload.subject,
            "scheduled_date": scheduling.normalize_scheduled_date(payload.scheduled_date),
            "start_time": payload.start_time,
            "end_time": payload.end_time,
            "duration": payload.duration,
            "scheduled_start": start,
            "scheduled_end": end,
            "questions": dump_questions(payload.questions),
            "total_marks": payload.total_marks,
            "passing_marks": payload.passing_marks,
            "batch_type": assignment.batch_type,
            "assigned_batches": assignment.regular,
            "assigned_placement_batches": assignment.placement,
            "shuffle_questions": payload.shuffle_questions,
            "show_results_immediately": payload.show_results_immediately,
            "allow_retake": payload.allow_retake,
            "status": payload.status,
        })
        logger.info(
            "Quiz %s created by trainer %s window=%s..%s", quiz.id, caller.id,
            start.isoformat(), end.isoformat(),
        )

        actor = self._actor(db, caller)
        targets = assignment.placement + assignment.regular
        await self._notify_each(
            targets,
            title="Quiz Created",
            message=f'{actor["name"]} scheduled a new {quiz.subject} quiz "{quiz.title}".',
            actor=actor,
        )
        await self.notifier.broadcast(
            assignment.regular + assignment.placement,
            title=f"New Quiz: {quiz.title}",
            message=(
                f'A new quiz "{quiz.title}" has been created by {actor["name"]}. '
                "Check your Available Quizzes section."
            ),
            category=NOTIFICATION_CATEGORY,
            type=NOTIFICATION_TYPE,
            actor=actor,
        )
        return quiz

    def list_trainer_quizzes(self, db: Session, caller: CallerContext) -> list[Quiz]:
        self._require_role(caller, "trainer")
        return crud.list_trainer_quizzes(db, caller.id)

    def get_trainer_quiz(self, db: Session, caller: CallerContext, quiz_id: str) -> Quiz:
        return self._owned_quiz(db, caller, quiz_id)

    def build_quiz_changes(self, db: Session, quiz: Quiz, patch: QuizUpdateIn) -> dict[str, Any]:
        """Column values to write for a partial update. Nothing is persisted here."""
        data = patch.model_dump(exclude_unset=True)
        changes: dict[str, Any] = {
            k: v for k, v in data.items() if k in PLAIN_FIELDS and v is not None
        }

        total_marks = quiz.total_marks
        if patch.questions is not None:
            if crud.count_submissions(db, quiz.id) > 0:
                raise ValidationError("Questions cannot be changed once students have submitted")
            changes["questions"] = dump_questions(patch.questions)
            total_marks = sum(q.marks for q in patch.questions)
            changes["total_marks"] = total_marks

        passing_marks = changes.get("passing_marks", quiz.passing_marks)
        if passing_marks > total_marks:
            raise ValidationError("passing_marks cannot exceed the total marks of the questions")

        if any(data.get(k) is not None for k in BATCH_FIELDS):
            regular = data.get("assigned_batches")
            placement = data.get("assigned_placement_batches")
            assignment = self._resolve_batches(
                db,
                data.get("batch_type") or quiz.batch_type,
                quiz.assigned_batches if regular is None else regular,
                quiz.assigned_placement_batches if placement is None else placement,
            )
            changes["batch_type"] = assignment.batch_type
            changes["assigned_batches"] = assignment.regular
            changes["assigned_placement_batches"] = assignment.placement

        if any(data.get(k) is not None for k in SCHEDULE_FIELDS):
            scheduled_date = data.get("scheduled_date") or quiz.scheduled_date
            start_time = data.get("start_time") or quiz.start_time
            end_time = data.get("end_time") or quiz.end_time
            start, end = scheduling.compute_window(
                scheduled_date, start_time, end_time,
                data.get("scheduled_start"), data.get("scheduled_end"),
            )
            changes.update(
                scheduled_date=scheduling.normalize_scheduled_date(scheduled_date),
                start_time=start_time,
                end_time=end_time,
                scheduled_start=start,
                scheduled_end=end,
            )
        return changes

    def update_quiz(self, db: Session, caller: CallerContext, quiz_id: str, patch: QuizUpdateIn) -> Quiz:
        quiz = self._owned_quiz(db, caller, quiz_id)
        if patch.subject is not None:
            self._validate_subject(db, caller, patch.subject)
        changes = self.build_quiz_changes(db, quiz, patch)
        quiz = crud.update_quiz(db, quiz, changes)
        logger.info("Quiz %s updated by trainer %s fields=%s", quiz.id, caller.id, sorted(changes))
        return quiz

    async def delete_quiz(self, db: Session, caller: CallerContext, quiz_id: str) -> None:
        quiz = self._owned_quiz(db, caller, quiz_id)
        actor = self._actor(db, caller)
        await self._notify_each(
            list(quiz.assigned_placement_batches or []) + list(quiz.assigned_batches or []),
            title="Quiz Deleted",
            message=f'The quiz "{quiz.title}" has been removed by {actor["name"]}.',
            actor=actor,
        )
        crud.delete_quiz(db, quiz)
        logger.info("Quiz %s deleted by trainer %s", quiz_id, caller.id)

    def batch_progress(self, db: Session, caller: CallerContext, quiz_id: str) -> dict[str, Any]:
        quiz = self._owned_quiz(db, caller, quiz_id)
        progress = []
        for sub, student in crud.quiz_submissions_with_students(db, quiz.id):
            progress.append({
                "student_id": sub.student_id,
                "student_name": student.name if student else None,
                "roll_no": student.roll_no if student else None,
                "email": student.email if student else None,
                "college": student.college if student else None,
                "branch": student.branch if student else None,
                "score": sub.score,
                "percentage": sub.percentage,
                "performance_category": sub.performance_category,
                "time_spent": sub.time_spent,
                "submitted_at": sub.submitted_at,
                "attempt_number": sub.attempt_number,
                "passed": sub.score >= quiz.passing_marks,
            })

        n = len(progress)
        stats = {
            "total_submissions": n,
            "average_score": sum(p["score"] for p in progress) / n if n else 0.0,
            "average_percentage": sum(p["percentage"] for p in progress) / n if n else 0.0,
            "passed_count": sum(1 for p in progress if p["passed"]),
            "failed_count": sum(1 for p in progress if not p["passed"]),
            "performance_distribution": {
                tier: sum(1 for p in progress if p["performance_category"] == tier)
                for tier in ("green", "yellow", "red")
            },
        }
        return {
            "progress": progress,
            "stats": stats,
            "batches": {
                "regular": list(quiz.assigned_batches or []),
                "placement": list(quiz.assigned_placement_batches or []),
            },
        }

    def backfill_scheduled_times(self, db: Session, caller: CallerContext) -> int:
        self._require_role(caller, "trainer")
        updated = 0
        for quiz in crud.list_quizzes_missing_window(db, caller.id):
            if not scheduling.needs_backfill(quiz.scheduled_start, quiz.scheduled_end):
                continue
            try:
                start, end = scheduling.compose_window(quiz.scheduled_date, quiz.start_time, quiz.end_time)
            except ValidationError as e:
                logger.warning("Skipping backfill for quiz %s: %s", quiz.id, e.detail)
                continue
            crud.update_quiz(db, quiz, {"scheduled_start": start, "scheduled_end": end})
            updated += 1
        logger.info("Backfilled %d quizzes for trainer %s", updated, caller.id)
        return updated

    # -------------------------
    # Student operations
    # -------------------------

    def list_student_quizzes(self, db: Session, caller: CallerContext) -> list[dict[str, Any]]:
        access = self._student_access(db, caller)
        if not access.batch_id and not access.placement_batch_id:
            return []

        quizzes = [q for q in crud.list_active_quizzes(db) if is_targeted(q, access)]
        submissions = crud.student_submissions_by_quiz(db, access.student_id, [q.id for q in quizzes])

        items = []
        for q in quizzes:
            sub = submissions.get(q.id)
            items.append({
                "id": q.id,
                "title": q.title,
                "subject": q.subject,
                "total_marks": q.total_marks,
                "passing_marks": q.passing_marks,
                "scheduled_date": q.scheduled_date,
                "start_time": q.start_time,
                "end_time": q.end_time,
                "duration": q.duration,
                "scheduled_start": scheduling.ensure_utc(q.scheduled_start),
                "scheduled_end": scheduling.ensure_utc(q.scheduled_end),
                "batch_type": q.batch_type,
                "assigned_batches": list(q.assigned_batches or []),
                "assigned_placement_batches": list(q.assigned_placement_batches or []),
                "has_submitted": sub is not None,
                "score": sub.score if sub else None,
                "percentage": sub.percentage if sub else None,
                "submitted_at": sub.submitted_at if sub else None,
                "attempt_number": sub.attempt_number if sub else 0,
            })
        return items

    def _admit(self, db: Session, caller: CallerContext, quiz_id: str, now: datetime | None,
               action: str) -> Quiz:
        access = self._student_access(db, caller)
        quiz = crud.get_quiz(db, quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found")
        decision = check_access(
            quiz, access, now=now, enforce_window=self.settings.enforce_schedule_window
        )
        if not decision.allowed:
            logger.warning(
                "[Quiz %s Denied] quiz:%s student:%s reason:%s",
                action, quiz.id, access.student_id, decision.reason,
            )
            raise AccessDeniedError(decision.reason, f"You are not authorized to {action.lower()} this quiz")
        return quiz

    def get_student_quiz(self, db: Session, caller: CallerContext, quiz_id: str,
                         now: datetime | None = None) -> dict[str, Any]:
        quiz = self._admit(db, caller, quiz_id, now, "Access")

        questions = []
        for index, q in enumerate(parse_questions(quiz.questions)):
            if q.question_type == "mcq":
                options = [{"text": o.text} for o in q.options]
            elif q.question_type == "true-false":
                options = [{"text": "True"}, {"text": "False"}]
            else:
                options = []
            questions.append({
                "question_index": index,
                "question_text": q.question_text,
                "question_type": q.question_type,
                "options": options,
                "marks": q.marks,
                "difficulty": q.difficulty,
            })
        if quiz.shuffle_questions:
            random.shuffle(questions)

        return {
            "id": quiz.id,
            "title": quiz.title,
            "description": quiz.description,
            "subject": quiz.subject,
            "scheduled_date": quiz.scheduled_date,
            "scheduled_start": scheduling.ensure_utc(quiz.scheduled_start),
            "scheduled_end": scheduling.ensure_utc(quiz.scheduled_end),
            "start_time": quiz.start_time,
            "end_time": quiz.end_time,
            "duration": quiz.duration,
            "questions": questions,
            "total_marks": quiz.total_marks,
            "passing_marks": quiz.passing_marks,
            "shuffle_questions": quiz.shuffle_questions,
            "show_results_immediately": quiz.show_results_immediately,
            "allow_retake": quiz.allow_retake,
        }

    def submit_quiz(self, db: Session, caller: CallerContext, quiz_id: str, payload: SubmitQuizIn,
                    now: datetime | None = None) -> dict[str, Any]:
        quiz = self._admit(db, caller, quiz_id, now, "Submit")
        outcome = grading.grade(
            parse_questions(quiz.questions), payload.answers, quiz.total_marks, quiz.passing_marks
        )

        for _ in range(self.settings.submit_conflict_retries + 1):
            existing = crud.get_submission(db, quiz.id, caller.id)
            previous = existing.attempt_number if existing else None
            attempt_number = grading.next_attempt_number(previous, quiz.allow_retake)
            values = grading.submission_values(outcome, payload.time_spent, attempt_number, now or _utcnow())

            if crud.write_submission(db, quiz.id, caller.id, values, expected_attempt=previous):
                logger.info(
                    "Quiz %s graded for student %s: score=%s/%s attempt=%s",
                    quiz.id, caller.id, outcome.score, outcome.total_marks, attempt_number,
                )
                return {
                    "score": outcome.score,
                    "percentage": outcome.percentage,
                    "performance_category": outcome.performance_category,
                    "total_marks": outcome.total_marks,
                    "passing_marks": outcome.passing_marks,
                    "passed": outcome.passed,
                    "attempt_number": attempt_number,
                }

            logger.warning(
                "Submission write conflict quiz:%s student:%s expected_attempt:%s",
                quiz.id, caller.id, previous,
            )
            if previous is None and not quiz.allow_retake:
                raise AlreadySubmittedError()

        raise SubmissionConflictError()

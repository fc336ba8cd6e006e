from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import (
    Batch, PlacementBatchTrainer, PlacementTrainingBatch, Quiz, QuizSubmission, Student, Trainer,
)

# kind -> (model, identifier columns searched when resolving a typed batch reference)
BATCH_KINDS = {
    "regular": (Batch, ("batch_number", "name")),
    "placement": (PlacementTrainingBatch, ("batch_number",)),
}


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# -------------------------
# Batch / student / trainer lookups (read-only)
# -------------------------

def find_batch_by_identifier(db: Session, kind: str, candidate: str, mode: str = "exact") -> str | None:
    """
    mode: "exact"    - identifier equals candidate
          "iexact"   - same, ignoring case
          "contains" - candidate appears anywhere in the identifier, ignoring case
    """
    model, fields = BATCH_KINDS[kind]
    cols = [getattr(model, f) for f in fields]

    if mode == "exact":
        cond = or_(*[c == candidate for c in cols])
    elif mode == "iexact":
        cond = or_(*[func.lower(c) == candidate.lower() for c in cols])
    elif mode == "contains":
        pattern = f"%{_escape_like(candidate.lower())}%"
        cond = or_(*[func.lower(c).like(pattern, escape="\\") for c in cols])
    else:
        raise ValueError(f"Unknown match mode: {mode}")

    row = db.query(model.id).filter(cond).order_by(model.batch_number, model.id).first()
    return row.id if row else None


def existing_batch_ids(db: Session, kind: str, ids: list[str]) -> set[str]:
    if not ids:
        return set()
    model, _ = BATCH_KINDS[kind]
    return {row.id for row in db.query(model.id).filter(model.id.in_(ids)).all()}


def batch_exists(db: Session, kind: str, batch_id: str) -> bool:
    return batch_id in existing_batch_ids(db, kind, [batch_id])


def get_student(db: Session, student_id: str) -> Student | None:
    return db.query(Student).filter(Student.id == student_id).first()


def get_trainer(db: Session, trainer_id: str) -> Trainer | None:
    return db.query(Trainer).filter(Trainer.id == trainer_id).first()


def find_trainer_subject(db: Session, trainer_id: str) -> str | None:
    t = get_trainer(db, trainer_id)
    return t.subject_dealing if t and t.subject_dealing else None


def trainer_regular_batches(db: Session, trainer_id: str) -> list[tuple[Batch, int]]:
    rows = (
        db.query(Batch, func.count(Student.id))
        .outerjoin(Student, Student.batch_id == Batch.id)
        .filter(Batch.trainer_id == trainer_id)
        .group_by(Batch.id)
        .order_by(Batch.batch_number)
        .all()
    )
    return [(b, int(n)) for b, n in rows]


def trainer_placement_batches(db: Session, trainer_id: str) -> list[tuple[PlacementTrainingBatch, int]]:
    rows = (
        db.query(PlacementTrainingBatch, func.count(func.distinct(Student.id)))
        .join(PlacementBatchTrainer, PlacementBatchTrainer.batch_id == PlacementTrainingBatch.id)
        .outerjoin(Student, Student.placement_training_batch_id == PlacementTrainingBatch.id)
        .filter(PlacementBatchTrainer.trainer_id == trainer_id, PlacementTrainingBatch.is_active.is_(True))
        .group_by(PlacementTrainingBatch.id)
        .order_by(PlacementTrainingBatch.batch_number)
        .all()
    )
    return [(b, int(n)) for b, n in rows]


# -------------------------
# Quizzes
# -------------------------

def create_quiz(db: Session, values: dict) -> Quiz:
    q = Quiz(**values)
    db.add(q)
    db.commit()
    db.refresh(q)
    return q


def get_quiz(db: Session, quiz_id: str) -> Quiz | None:
    return db.query(Quiz).filter(Quiz.id == quiz_id).first()


def get_trainer_quiz(db: Session, trainer_id: str, quiz_id: str) -> Quiz | None:
    return db.query(Quiz).filter(Quiz.id == quiz_id, Quiz.trainer_id == trainer_id).first()


def list_trainer_quizzes(db: Session, trainer_id: str) -> list[Quiz]:
    return (
        db.query(Quiz)
        .filter(Quiz.trainer_id == trainer_id)
        .order_by(Quiz.created_at.desc(), Quiz.id)
        .all()
    )


def list_active_quizzes(db: Session) -> list[Quiz]:
    return db.query(Quiz).filter(Quiz.status == "active").order_by(Quiz.scheduled_date.asc(), Quiz.id).all()


def list_quizzes_missing_window(db: Session, trainer_id: str) -> list[Quiz]:
    return (
        db.query(Quiz)
        .filter(
            Quiz.trainer_id == trainer_id,
            or_(Quiz.scheduled_start.is_(None), Quiz.scheduled_end.is_(None)),
        )
        .all()
    )


def update_quiz(db: Session, quiz: Quiz, changes: dict) -> Quiz:
    for field, value in changes.items():
        if hasattr(quiz, field):
            setattr(quiz, field, value)
    db.commit()
    db.refresh(quiz)
    return quiz


def delete_quiz(db: Session, quiz: Quiz) -> None:
    db.delete(quiz)
    db.commit()


# -------------------------
# Submissions
# -------------------------

def get_submission(db: Session, quiz_id: str, student_id: str) -> QuizSubmission | None:
    # always reload: a concurrent writer may have bumped the attempt since the last read
    return (
        db.query(QuizSubmission)
        .filter(QuizSubmission.quiz_id == quiz_id, QuizSubmission.student_id == student_id)
        .populate_existing()
        .first()
    )


def count_submissions(db: Session, quiz_id: str) -> int:
    return db.query(QuizSubmission).filter(QuizSubmission.quiz_id == quiz_id).count()


def student_submissions_by_quiz(db: Session, student_id: str, quiz_ids: list[str]) -> dict[str, QuizSubmission]:
    if not quiz_ids:
        return {}
    subs = (
        db.query(QuizSubmission)
        .filter(QuizSubmission.student_id == student_id, QuizSubmission.quiz_id.in_(quiz_ids))
        .all()
    )
    return {s.quiz_id: s for s in subs}


def quiz_submissions_with_students(db: Session, quiz_id: str) -> list[tuple[QuizSubmission, Student | None]]:
    rows = (
        db.query(QuizSubmission, Student)
        .outerjoin(Student, Student.id == QuizSubmission.student_id)
        .filter(QuizSubmission.quiz_id == quiz_id)
        .order_by(QuizSubmission.submitted_at, QuizSubmission.id)
        .all()
    )
    return [(s, st) for s, st in rows]


def write_submission(db: Session, quiz_id: str, student_id: str, values: dict,
                     expected_attempt: int | None) -> bool:
    """
    Store the live submission for (quiz, student) only if it is still the one
    that was read: absent when expected_attempt is None, otherwise carrying
    that attempt number. Returns False when another write got there first.
    """
    if expected_attempt is None:
        db.add(QuizSubmission(quiz_id=quiz_id, student_id=student_id, **values))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return False
        return True

    result = db.execute(
        update(QuizSubmission)
        .where(
            QuizSubmission.quiz_id == quiz_id,
            QuizSubmission.student_id == student_id,
            QuizSubmission.attempt_number == expected_attempt,
        )
        .values(**values)
    )
    if result.rowcount != 1:
        db.rollback()
        return False
    db.commit()
    return True

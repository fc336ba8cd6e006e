from dataclasses import dataclass
from datetime import datetime, timezone

from .scheduling import ensure_utc

REGULAR_TYPES = ("noncrt", "regular", "both")
PLACEMENT_TYPES = ("placement", "both")

QUIZ_INACTIVE = "quiz-inactive"
NOT_TARGETED = "not-targeted"
NOT_YET_OPEN = "not-yet-open"
WINDOW_CLOSED = "window-closed"


@dataclass(frozen=True)
class StudentAccess:
    student_id: str
    batch_id: str | None = None
    placement_batch_id: str | None = None


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str | None = None


def is_targeted(quiz, student: StudentAccess) -> bool:
    if (
        quiz.batch_type in REGULAR_TYPES
        and student.batch_id
        and student.batch_id in (quiz.assigned_batches or [])
    ):
        return True
    return bool(
        quiz.batch_type in PLACEMENT_TYPES
        and student.placement_batch_id
        and student.placement_batch_id in (quiz.assigned_placement_batches or [])
    )


def check_access(quiz, student: StudentAccess, now: datetime | None = None,
                 enforce_window: bool = False) -> AccessDecision:
    """
    Decide whether a student may open or submit a quiz.

    The quiz must be active and target one of the student's batches. With
    enforce_window, ``now`` must also fall inside the scheduled window.
    Nothing is read or written here; callers log the reason on denial.
    """
    if quiz.status != "active":
        return AccessDecision(False, QUIZ_INACTIVE)
    if not is_targeted(quiz, student):
        return AccessDecision(False, NOT_TARGETED)

    if enforce_window:
        now = ensure_utc(now) or datetime.now(timezone.utc)
        start = ensure_utc(quiz.scheduled_start)
        end = ensure_utc(quiz.scheduled_end)
        if start is not None and now < start:
            return AccessDecision(False, NOT_YET_OPEN)
        if end is not None and now > end:
            return AccessDecision(False, WINDOW_CLOSED)

    return AccessDecision(True)

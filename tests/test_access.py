from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from quiz_service.access import StudentAccess, check_access

NOW = datetime(2025, 3, 10, 10, 30, tzinfo=timezone.utc)


def make_quiz(**overrides):
    quiz = SimpleNamespace(
        status="active",
        batch_type="noncrt",
        assigned_batches=["reg-1"],
        assigned_placement_batches=[],
        scheduled_start=datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc),
        scheduled_end=datetime(2025, 3, 10, 11, 0, tzinfo=timezone.utc),
    )
    for k, v in overrides.items():
        setattr(quiz, k, v)
    return quiz


def test_regular_student_in_targeted_batch_is_allowed():
    decision = check_access(make_quiz(), StudentAccess("s1", batch_id="reg-1"), now=NOW)
    assert decision.allowed
    assert decision.reason is None


def test_placement_student_is_allowed_on_placement_quiz():
    quiz = make_quiz(batch_type="placement", assigned_batches=[], assigned_placement_batches=["pt-1"])
    assert check_access(quiz, StudentAccess("s1", placement_batch_id="pt-1")).allowed


def test_both_accepts_either_membership():
    quiz = make_quiz(batch_type="both", assigned_placement_batches=["pt-1"])
    assert check_access(quiz, StudentAccess("s1", batch_id="reg-1")).allowed
    assert check_access(quiz, StudentAccess("s2", placement_batch_id="pt-1")).allowed


def test_inactive_quiz_is_denied_before_targeting():
    decision = check_access(make_quiz(status="inactive"), StudentAccess("s1", batch_id="reg-1"))
    assert not decision.allowed
    assert decision.reason == "quiz-inactive"


def test_student_outside_targeted_batches_is_denied():
    decision = check_access(make_quiz(), StudentAccess("s1", batch_id="reg-2"))
    assert decision.reason == "not-targeted"


def test_batch_type_limits_which_list_counts():
    # listed in the regular batches, but the quiz only targets the placement track
    quiz = make_quiz(batch_type="placement", assigned_placement_batches=["pt-1"])
    decision = check_access(quiz, StudentAccess("s1", batch_id="reg-1"))
    assert decision.reason == "not-targeted"


def test_student_without_batches_is_denied():
    assert check_access(make_quiz(), StudentAccess("s1")).reason == "not-targeted"


def test_legacy_regular_batch_type():
    assert check_access(make_quiz(batch_type="regular"), StudentAccess("s1", batch_id="reg-1")).allowed


def test_window_is_ignored_unless_enforced():
    late = NOW + timedelta(days=2)
    assert check_access(make_quiz(), StudentAccess("s1", batch_id="reg-1"), now=late).allowed


def test_enforced_window():
    student = StudentAccess("s1", batch_id="reg-1")
    quiz = make_quiz()
    early = check_access(quiz, student, now=NOW - timedelta(hours=1), enforce_window=True)
    late = check_access(quiz, student, now=NOW + timedelta(hours=1), enforce_window=True)
    assert early.reason == "not-yet-open"
    assert late.reason == "window-closed"
    assert check_access(quiz, student, now=NOW, enforce_window=True).allowed


def test_enforced_window_reads_naive_instants_as_utc():
    quiz = make_quiz(scheduled_start=datetime(2025, 3, 10, 10, 0), scheduled_end=datetime(2025, 3, 10, 11, 0))
    assert check_access(quiz, StudentAccess("s1", batch_id="reg-1"), now=NOW, enforce_window=True).allowed

from dataclasses import asdict, dataclass
from datetime import datetime

from .errors import AlreadySubmittedError, ValidationError
from .schemas import (
    FillBlankQuestion, MultipleChoiceQuestion, Question, SubmitAnswerIn, TrueFalseQuestion,
)

GREEN_THRESHOLD = 80.0
YELLOW_THRESHOLD = 60.0


@dataclass(frozen=True)
class EvaluatedAnswer:
    question_index: int
    selected_option: str | None
    answer: str | None
    is_correct: bool


@dataclass(frozen=True)
class GradeOutcome:
    answers: list[EvaluatedAnswer]
    score: int
    percentage: float
    performance_category: str
    total_marks: int
    passing_marks: int
    passed: bool


def performance_category(percentage: float) -> str:
    if percentage >= GREEN_THRESHOLD:
        return "green"
    if percentage >= YELLOW_THRESHOLD:
        return "yellow"
    return "red"


def _norm(text: str | None) -> str:
    return (text or "").strip().lower()


def is_correct(question: Question, answer: SubmitAnswerIn) -> bool:
    if isinstance(question, MultipleChoiceQuestion):
        return answer.selected_option == question.correct_option_text
    if isinstance(question, TrueFalseQuestion):
        submitted = answer.selected_option if answer.selected_option is not None else answer.answer
        return (submitted or "").lower() == question.correct_answer.lower()
    if isinstance(question, FillBlankQuestion):
        return answer.answer is not None and _norm(answer.answer) == _norm(question.correct_answer)
    return False


def align_answers(questions: list[Question], answers: list[SubmitAnswerIn]) -> list[SubmitAnswerIn]:
    """
    Put answers in question order. Answers are positional unless every one
    carries a question_index (the student saw a shuffled paper).
    """
    if len(answers) != len(questions):
        raise ValidationError(
            f"Expected {len(questions)} answers, got {len(answers)}"
        )
    if not all(a.question_index is not None for a in answers):
        return list(answers)

    ordered: list[SubmitAnswerIn | None] = [None] * len(questions)
    for a in answers:
        if a.question_index >= len(questions) or ordered[a.question_index] is not None:
            raise ValidationError(f"Invalid or repeated question_index {a.question_index}")
        ordered[a.question_index] = a
    return ordered


def grade(questions: list[Question], answers: list[SubmitAnswerIn], total_marks: int,
          passing_marks: int) -> GradeOutcome:
    """
    Score an answer sheet. total_marks comes from the quiz as created, it is
    not recomputed from the questions here.
    """
    evaluated: list[EvaluatedAnswer] = []
    score = 0
    for index, (question, answer) in enumerate(zip(questions, align_answers(questions, answers))):
        ok = is_correct(question, answer)
        if ok:
            score += question.marks
        evaluated.append(EvaluatedAnswer(
            question_index=index,
            selected_option=answer.selected_option,
            answer=answer.answer,
            is_correct=ok,
        ))

    percentage = 100 * score / total_marks if total_marks else 0.0
    return GradeOutcome(
        answers=evaluated,
        score=score,
        percentage=percentage,
        performance_category=performance_category(percentage),
        total_marks=total_marks,
        passing_marks=passing_marks,
        passed=score >= passing_marks,
    )


def next_attempt_number(previous_attempt: int | None, allow_retake: bool) -> int:
    if previous_attempt is None:
        return 1
    if not allow_retake:
        raise AlreadySubmittedError()
    return previous_attempt + 1


def submission_values(outcome: GradeOutcome, time_spent: int, attempt_number: int,
                      submitted_at: datetime) -> dict:
    """Full replacement for the stored submission, nothing merged from the old one."""
    return {
        "answers": [asdict(a) for a in outcome.answers],
        "score": outcome.score,
        "percentage": outcome.percentage,
        "time_spent": time_spent,
        "performance_category": outcome.performance_category,
        "attempt_number": attempt_number,
        "submitted_at": submitted_at,
    }

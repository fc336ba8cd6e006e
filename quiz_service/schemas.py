from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from .scheduling import ensure_utc

TIME_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"

BatchType = Literal["noncrt", "placement", "both"]
QuizStatus = Literal["active", "inactive", "archived"]
Difficulty = Literal["easy", "medium", "hard"]
PerformanceCategory = Literal["green", "yellow", "red"]


def _normalize_batch_type(v: Any) -> Any:
    # "regular" is the legacy name of the non-CRT track
    if isinstance(v, str) and v.strip().lower() == "regular":
        return "noncrt"
    return v


def _default_question_types(v: Any) -> Any:
    if isinstance(v, list):
        return [
            {**q, "question_type": q.get("question_type") or "mcq"} if isinstance(q, dict) else q
            for q in v
        ]
    return v


# -------------------------
# Questions
# -------------------------

class OptionIn(BaseModel):
    text: str = Field(min_length=1)
    is_correct: bool = False


class _QuestionBase(BaseModel):
    question_text: str = Field(min_length=1)
    marks: int = Field(default=1, ge=0)
    difficulty: Difficulty = "medium"
    explanation: str = ""


class MultipleChoiceQuestion(_QuestionBase):
    question_type: Literal["mcq"] = "mcq"
    options: list[OptionIn] = Field(min_length=2)

    @model_validator(mode="after")
    def exactly_one_correct(self) -> "MultipleChoiceQuestion":
        correct = [o for o in self.options if o.is_correct]
        if len(correct) != 1:
            raise ValueError("A multiple-choice question needs exactly one correct option")
        return self

    @property
    def correct_option_text(self) -> str:
        return next(o.text for o in self.options if o.is_correct)


class TrueFalseQuestion(_QuestionBase):
    question_type: Literal["true-false"] = "true-false"
    correct_answer: str

    @field_validator("correct_answer")
    @classmethod
    def true_or_false(cls, v: str) -> str:
        if v.strip().lower() not in ("true", "false"):
            raise ValueError("correct_answer must be 'true' or 'false'")
        return v.strip()


class FillBlankQuestion(_QuestionBase):
    question_type: Literal["fill-blank"] = "fill-blank"
    correct_answer: str = Field(min_length=1)


Question = Annotated[
    Union[MultipleChoiceQuestion, TrueFalseQuestion, FillBlankQuestion],
    Field(discriminator="question_type"),
]

_question_list = TypeAdapter(list[Question])


def parse_questions(raw: list[dict]) -> list[Question]:
    """Load stored question dicts back into their typed form."""
    return _question_list.validate_python(_default_question_types(raw or []))


def dump_questions(questions: list[Question]) -> list[dict]:
    return [q.model_dump() for q in questions]


# -------------------------
# Trainer requests
# -------------------------

class QuizCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=1000)
    subject: str = Field(min_length=1)

    scheduled_date: Union[date, datetime]
    start_time: str = Field(pattern=TIME_PATTERN)
    end_time: str = Field(pattern=TIME_PATTERN)
    duration: int = Field(ge=1, description="Minutes")
    # explicit ISO instants, used verbatim when both parse
    scheduled_start: Optional[str] = None
    scheduled_end: Optional[str] = None

    questions: list[Question] = Field(min_length=1)
    passing_marks: int = Field(ge=0)

    batch_type: BatchType = "noncrt"
    assigned_batches: list[str] = Field(default_factory=list)
    assigned_placement_batches: list[str] = Field(default_factory=list)

    shuffle_questions: bool = False
    show_results_immediately: bool = True
    allow_retake: bool = False
    status: QuizStatus = "active"

    normalize_batch_type = field_validator("batch_type", mode="before")(_normalize_batch_type)
    default_question_types = field_validator("questions", mode="before")(_default_question_types)

    @property
    def total_marks(self) -> int:
        return sum(q.marks for q in self.questions)

    @model_validator(mode="after")
    def passing_within_total(self) -> "QuizCreateIn":
        if self.passing_marks > self.total_marks:
            raise ValueError("passing_marks cannot exceed the total marks of the questions")
        return self


class QuizUpdateIn(BaseModel):
    """Partial update. Unknown keys (including submissions) are dropped."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    subject: Optional[str] = Field(default=None, min_length=1)

    scheduled_date: Optional[Union[date, datetime]] = None
    start_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    duration: Optional[int] = Field(default=None, ge=1)
    scheduled_start: Optional[str] = None
    scheduled_end: Optional[str] = None

    questions: Optional[list[Question]] = Field(default=None, min_length=1)
    passing_marks: Optional[int] = Field(default=None, ge=0)

    batch_type: Optional[BatchType] = None
    assigned_batches: Optional[list[str]] = None
    assigned_placement_batches: Optional[list[str]] = None

    shuffle_questions: Optional[bool] = None
    show_results_immediately: Optional[bool] = None
    allow_retake: Optional[bool] = None
    status: Optional[QuizStatus] = None

    normalize_batch_type = field_validator("batch_type", mode="before")(_normalize_batch_type)
    default_question_types = field_validator("questions", mode="before")(_default_question_types)


# -------------------------
# Trainer responses
# -------------------------

class QuizSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    trainer_id: str
    title: str
    description: str
    subject: str
    scheduled_date: date
    start_time: str
    end_time: str
    duration: int
    scheduled_start: Optional[datetime]
    scheduled_end: Optional[datetime]
    total_marks: int
    passing_marks: int
    batch_type: BatchType
    assigned_batches: list[str]
    assigned_placement_batches: list[str]
    shuffle_questions: bool
    show_results_immediately: bool
    allow_retake: bool
    status: QuizStatus
    created_at: datetime
    updated_at: datetime

    # sqlite hands back naive values; every instant here is UTC
    as_utc = field_validator(
        "scheduled_start", "scheduled_end", "created_at", "updated_at", mode="after"
    )(ensure_utc)


class QuizOut(QuizSummaryOut):
    questions: list[Question]


class BatchOut(BaseModel):
    id: str
    name: str
    batch_number: str
    student_count: int
    type: Literal["regular", "placement"]
    is_crt: Optional[bool] = None
    tech_stack: Optional[str] = None
    year: Optional[str] = None
    colleges: Optional[list[str]] = None


class TrainerBatchesOut(BaseModel):
    regular: list[BatchOut]
    placement: list[BatchOut]
    all: list[BatchOut]


class ProgressRowOut(BaseModel):
    student_id: str
    student_name: Optional[str] = None
    roll_no: Optional[str] = None
    email: Optional[str] = None
    college: Optional[str] = None
    branch: Optional[str] = None
    score: float
    percentage: float
    performance_category: PerformanceCategory
    time_spent: int
    submitted_at: datetime
    attempt_number: int
    passed: bool

    as_utc = field_validator("submitted_at", mode="after")(ensure_utc)


class ProgressStatsOut(BaseModel):
    total_submissions: int
    average_score: float
    average_percentage: float
    passed_count: int
    failed_count: int
    performance_distribution: dict[str, int]


class BatchProgressOut(BaseModel):
    progress: list[ProgressRowOut]
    stats: ProgressStatsOut
    batches: dict[str, list[str]]


class BackfillOut(BaseModel):
    message: str
    updated: int


class MessageOut(BaseModel):
    message: str


# -------------------------
# Student side
# -------------------------

class StudentOptionOut(BaseModel):
    text: str


class StudentQuestionOut(BaseModel):
    question_index: int
    question_text: str
    question_type: Literal["mcq", "true-false", "fill-blank"]
    options: list[StudentOptionOut]
    marks: int
    difficulty: Difficulty


class StudentQuizOut(BaseModel):
    id: str
    title: str
    description: str
    subject: str
    scheduled_date: date
    scheduled_start: Optional[datetime]
    scheduled_end: Optional[datetime]
    start_time: str
    end_time: str
    duration: int
    questions: list[StudentQuestionOut]
    total_marks: int
    passing_marks: int
    shuffle_questions: bool
    show_results_immediately: bool
    allow_retake: bool


class StudentQuizListItemOut(BaseModel):
    id: str
    title: str
    subject: str
    total_marks: int
    passing_marks: int
    scheduled_date: date
    start_time: str
    end_time: str
    duration: int
    scheduled_start: Optional[datetime]
    scheduled_end: Optional[datetime]
    batch_type: BatchType
    assigned_batches: list[str]
    assigned_placement_batches: list[str]
    has_submitted: bool
    score: Optional[float] = None
    percentage: Optional[float] = None
    submitted_at: Optional[datetime] = None
    attempt_number: int = 0

    as_utc = field_validator(
        "scheduled_start", "scheduled_end", "submitted_at", mode="after"
    )(ensure_utc)


class SubmitAnswerIn(BaseModel):
    # position in the stored question list; needed when questions were shuffled
    question_index: Optional[int] = Field(default=None, ge=0)
    selected_option: Optional[str] = None
    answer: Optional[str] = None


class SubmitQuizIn(BaseModel):
    answers: list[SubmitAnswerIn]
    time_spent: int = Field(default=0, ge=0, description="Seconds")


class GradeResultOut(BaseModel):
    score: float
    percentage: float
    performance_category: PerformanceCategory
    total_marks: int
    passing_marks: int
    passed: bool
    attempt_number: int

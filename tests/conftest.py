from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from quiz_service import models
from quiz_service.config import Settings
from quiz_service.main import create_app
from quiz_service.service import CallerContext, QuizService
from shared.database import Base, make_engine, make_session_factory


class RecordingNotifier:
    def __init__(self):
        self.sent: list[dict] = []
        self.broadcasts: list[dict] = []

    async def notify_batch(self, batch_id, **kwargs):
        self.sent.append({"batch_id": batch_id, **kwargs})

    async def broadcast(self, batch_ids, **kwargs):
        self.broadcasts.append({"batch_ids": list(batch_ids), **kwargs})


@pytest.fixture
def engine():
    e = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=e)
    yield e
    e.dispose()


@pytest.fixture
def SessionLocal(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(SessionLocal):
    s = SessionLocal()
    yield s
    s.close()


@pytest.fixture
def seed(db):
    trainer = models.Trainer(name="Ravi Kumar", subject_dealing="Java")
    other_trainer = models.Trainer(name="Anita Rao", subject_dealing="Python")
    cse = models.Batch(batch_number="CSE-2025-A", name="Computer Science A", college="KIET", trainer_id=None)
    ece = models.Batch(batch_number="ECE-2025-B", name="Electronics B", college="KIEK", trainer_id=None)
    db.add_all([trainer, other_trainer, cse, ece])
    db.flush()
    cse.trainer_id = trainer.id
    ece.trainer_id = trainer.id

    java = models.PlacementTrainingBatch(batch_number="PT-JAVA-01", tech_stack="Java", year="2025",
                                         colleges=["KIET", "KIEW"])
    old = models.PlacementTrainingBatch(batch_number="PT-OLD-09", tech_stack="C", year="2023",
                                        is_active=False)
    db.add_all([java, old])
    db.flush()
    db.add_all([
        models.PlacementBatchTrainer(batch_id=java.id, trainer_id=trainer.id, subject="Java", time_slot="morning"),
        models.PlacementBatchTrainer(batch_id=java.id, trainer_id=trainer.id, subject="Java", time_slot="evening"),
        models.PlacementBatchTrainer(batch_id=old.id, trainer_id=trainer.id, subject="C", time_slot="morning"),
    ])

    regular_student = models.Student(name="Asha", roll_no="21A01", email="asha@example.com",
                                     college="KIET", branch="CSE", batch_id=cse.id)
    crt_student = models.Student(name="Vikram", roll_no="21A02", email="vikram@example.com",
                                 college="KIEW", branch="IT", placement_training_batch_id=java.id)
    loose_student = models.Student(name="Meena", roll_no="21A03", college="KIEK", branch="ECE")
    db.add_all([regular_student, crt_student, loose_student])
    db.commit()

    return SimpleNamespace(
        trainer=trainer, other_trainer=other_trainer, cse=cse, ece=ece, java=java, old=old,
        regular_student=regular_student, crt_student=crt_student, loose_student=loose_student,
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    return Settings(database_url="sqlite:///:memory:")


@pytest.fixture
def service(settings, notifier):
    return QuizService(settings, notifier)


@pytest.fixture
def trainer_ctx(seed):
    return CallerContext(id=seed.trainer.id, role="trainer", name="Ravi Kumar")


@pytest.fixture
def student_ctx(seed):
    return CallerContext(id=seed.regular_student.id, role="student", name="Asha")


@pytest.fixture
def quiz_payload():
    def build(**overrides) -> dict:
        payload = {
            "title": "Collections Basics",
            "description": "Lists, sets and maps",
            "subject": "Java",
            "scheduled_date": "2025-03-10",
            "start_time": "10:00",
            "end_time": "11:00",
            "duration": 45,
            "questions": [
                {
                    "question_text": "Which collection keeps insertion order?",
                    "question_type": "mcq",
                    "options": [
                        {"text": "LinkedHashMap", "is_correct": True},
                        {"text": "HashMap", "is_correct": False},
                    ],
                    "marks": 2,
                },
                {
                    "question_text": "A Set may contain duplicates.",
                    "question_type": "true-false",
                    "correct_answer": "false",
                    "marks": 1,
                },
                {
                    "question_text": "The root interface of the collections framework is ____.",
                    "question_type": "fill-blank",
                    "correct_answer": "Collection",
                    "marks": 2,
                },
            ],
            "passing_marks": 2,
            "batch_type": "noncrt",
            "assigned_batches": ["CSE-2025-A"],
            "assigned_placement_batches": [],
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def client(settings, SessionLocal, notifier, seed):
    app = create_app(settings, SessionLocal, notifier)
    with TestClient(app) as c:
        yield c


def headers_for(user_id: str, role: str, name: str = "") -> dict:
    return {"x-user-id": user_id, "x-user-role": role, "x-user-name": name}


@pytest.fixture
def auth():
    return headers_for

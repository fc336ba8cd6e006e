from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from shared.database import db_dependency

from .schemas import (
    BackfillOut, BatchProgressOut, GradeResultOut, MessageOut, QuizCreateIn, QuizOut,
    QuizSummaryOut, QuizUpdateIn, StudentQuizListItemOut, StudentQuizOut, SubmitQuizIn,
    TrainerBatchesOut,
)
from .service import CallerContext, QuizService


def current_caller(request: Request) -> CallerContext:
    # identity headers are set by the fronting gateway after token verification
    uid = (request.headers.get("x-user-id") or "").strip()
    if not uid:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return CallerContext(
        id=uid,
        role=(request.headers.get("x-user-role") or "").strip().lower(),
        name=(request.headers.get("x-user-name") or "").strip(),
        subject=(request.headers.get("x-user-subject") or "").strip() or None,
    )


def build_router(SessionLocal, service: QuizService) -> APIRouter:
    router = APIRouter()
    get_db = db_dependency(SessionLocal)

    # Trainer endpoints

    @router.get("/batches", response_model=TrainerBatchesOut)
    def get_batches(caller: CallerContext = Depends(current_caller), db: Session = Depends(get_db)):
        return service.list_trainer_batches(db, caller)

    @router.get("/subjects", response_model=list[str])
    def get_subjects(caller: CallerContext = Depends(current_caller), db: Session = Depends(get_db)):
        return service.list_trainer_subjects(db, caller)

    @router.post("/", response_model=QuizOut, status_code=201)
    async def create(payload: QuizCreateIn, caller: CallerContext = Depends(current_caller),
                     db: Session = Depends(get_db)):
        return await service.create_quiz(db, caller, payload)

    @router.get("/", response_model=list[QuizSummaryOut])
    def list_mine(caller: CallerContext = Depends(current_caller), db: Session = Depends(get_db)):
        return service.list_trainer_quizzes(db, caller)

    @router.post("/backfill-scheduled-times", response_model=BackfillOut)
    def backfill(caller: CallerContext = Depends(current_caller), db: Session = Depends(get_db)):
        updated = service.backfill_scheduled_times(db, caller)
        return BackfillOut(message=f"Backfilled {updated} quizzes with explicit scheduled times", updated=updated)

    # Student endpoints

    @router.get("/student/list", response_model=list[StudentQuizListItemOut])
    def student_list(caller: CallerContext = Depends(current_caller), db: Session = Depends(get_db)):
        return service.list_student_quizzes(db, caller)

    @router.get("/student/{quiz_id}", response_model=StudentQuizOut)
    def student_get(quiz_id: str, caller: CallerContext = Depends(current_caller),
                    db: Session = Depends(get_db)):
        return service.get_student_quiz(db, caller, quiz_id)

    @router.post("/{quiz_id}/submit", response_model=GradeResultOut)
    def submit(quiz_id: str, payload: SubmitQuizIn, caller: CallerContext = Depends(current_caller),
               db: Session = Depends(get_db)):
        return service.submit_quiz(db, caller, quiz_id, payload)

    # Trainer endpoints on a single quiz

    @router.get("/{quiz_id}/batch-progress", response_model=BatchProgressOut)
    def batch_progress(quiz_id: str, caller: CallerContext = Depends(current_caller),
                       db: Session = Depends(get_db)):
        return service.batch_progress(db, caller, quiz_id)

    @router.get("/{quiz_id}", response_model=QuizOut)
    def get_one(quiz_id: str, caller: CallerContext = Depends(current_caller), db: Session = Depends(get_db)):
        return service.get_trainer_quiz(db, caller, quiz_id)

    @router.put("/{quiz_id}", response_model=QuizOut)
    def update(quiz_id: str, payload: QuizUpdateIn, caller: CallerContext = Depends(current_caller),
               db: Session = Depends(get_db)):
        return service.update_quiz(db, caller, quiz_id, payload)

    @router.delete("/{quiz_id}", response_model=MessageOut)
    async def remove(quiz_id: str, caller: CallerContext = Depends(current_caller),
                     db: Session = Depends(get_db)):
        await service.delete_quiz(db, caller, quiz_id)
        return MessageOut(message="Quiz deleted successfully and students notified")

    return router

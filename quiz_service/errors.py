class QuizServiceError(Exception):
    status_code = 400
    detail = "Request failed"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.detail)
        self.detail = detail or self.detail


class ValidationError(QuizServiceError):
    status_code = 400
    detail = "Invalid quiz data"


class NotFoundError(QuizServiceError):
    # also raised for another trainer's quiz, so existence does not leak
    status_code = 404
    detail = "Quiz not found or not authorized"


class ForbiddenRoleError(QuizServiceError):
    status_code = 403
    detail = "Insufficient permissions"


class AccessDeniedError(QuizServiceError):
    status_code = 403
    detail = "You are not authorized to access this quiz"

    def __init__(self, reason: str, detail: str | None = None):
        super().__init__(detail)
        self.reason = reason


class AlreadySubmittedError(QuizServiceError):
    status_code = 400
    detail = "You have already submitted this quiz"


class SubmissionConflictError(QuizServiceError):
    status_code = 409
    detail = "Another submission for this quiz was saved at the same time, please retry"

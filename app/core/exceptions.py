"""Domain errors. Each carries the HTTP status the API answers with."""


class AppError(Exception):
    status_code = 500
    detail = "Internal error"

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class InvalidInputError(AppError):
    status_code = 400
    detail = "Invalid input"


class UnauthorizedError(AppError):
    status_code = 401
    detail = "Unauthorized"


class UpstreamQuotaExhaustedError(AppError):
    status_code = 402
    detail = "AI credits exhausted. Please add credits."


class ForbiddenError(AppError):
    status_code = 403
    detail = "Not a member of this room"


class NotFoundError(AppError):
    status_code = 404
    detail = "Not found"


class ConflictError(AppError):
    status_code = 409
    detail = "Conflict"


class UpstreamRateLimitedError(AppError):
    status_code = 429
    detail = "Rate limit exceeded. Please try again in a moment."


class StoreWriteError(AppError):
    status_code = 500
    detail = "Failed to save progress"


class StoreReadError(AppError):
    status_code = 500
    detail = "Failed to load progress"


class UpstreamError(AppError):
    status_code = 502
    detail = "AI processing failed"


class MalformedUpstreamError(UpstreamError):
    detail = "AI returned a malformed syllabus"

"""
Error taxonomy shared by the store, the completion handler and the API.
"""


class StudyPlannerError(Exception):
    status_code = 500
    kind = "error"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.kind

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.detail}


class Unauthenticated(StudyPlannerError):
    status_code = 401
    kind = "unauthenticated"


class NotFound(StudyPlannerError):
    status_code = 404
    kind = "not_found"


class StorageFailure(StudyPlannerError):
    status_code = 500
    kind = "storage_failure"


class StreakWriteConflict(StorageFailure):
    """Compare-and-set on the streak record kept losing to concurrent writers."""
    kind = "streak_conflict"

"""
Domain error taxonomy shared by the policy layer, the services and the API.
"""

class CourseHubError(Exception):
    """Base class for every domain error."""

    error_type = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class AuthorizationDenied(CourseHubError):
    """No policy rule is satisfied, or the row is not visible.

    Raised with the same message whether the row is missing or hidden so
    callers cannot enumerate rows they are not allowed to see.
    """

    error_type = "not_found"

    @classmethod
    def not_found(cls, entity: str) -> "AuthorizationDenied":
        return cls(f"{entity} not found")


class ExamNotFound(CourseHubError):
    error_type = "exam_not_found"


class InvalidInput(CourseHubError):
    error_type = "invalid_input"


class InvalidState(CourseHubError):
    """The operation is not valid in the exam session's current state."""

    error_type = "invalid_state"


class DegenerateExam(CourseHubError):
    """The exam carries zero total points; a configuration defect."""

    error_type = "degenerate_exam"


class PersistenceFailure(CourseHubError):
    error_type = "persistence_failure"


class DuplicateRecord(PersistenceFailure):
    """A unique constraint rejected the write."""

    error_type = "duplicate_record"


class DuplicateCertificate(CourseHubError):
    """A certificate already exists for the account and course."""

    error_type = "duplicate_certificate"

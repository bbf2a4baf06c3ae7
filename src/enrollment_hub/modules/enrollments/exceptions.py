"""
Enrollment Service Exceptions

Domain errors raised inside coordinated enrollment operations. The
coordinator turns every one of them into a failed ``OperationResult`` using
``error_code`` and ``message``; routers map ``status_code`` onto HTTP.
"""


class EnrollmentServiceError(Exception):
    """Base exception for enrollment service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class InvalidIdentifierError(EnrollmentServiceError):
    """Raised when a student or class id is empty or malformed."""

    def __init__(self, field: str):
        super().__init__(
            message=f"{field} must be 1-64 characters of letters, digits, '.', '_' or '-'",
            error_code="INVALID_IDENTIFIER",
            status_code=400,
        )


class ClassNotFoundError(EnrollmentServiceError):
    """Raised when a class has no capacity record."""

    def __init__(self, class_id: str):
        super().__init__(
            message=f"Class {class_id} not found",
            error_code="CLASS_NOT_FOUND",
            status_code=404,
        )


class ClassArchivedError(EnrollmentServiceError):
    """Raised when enrolling into an archived class."""

    def __init__(self, class_id: str):
        super().__init__(
            message=f"Class {class_id} is archived and no longer accepts enrollments",
            error_code="CLASS_ARCHIVED",
            status_code=409,
        )


class ClassAlreadyExistsError(EnrollmentServiceError):
    """Raised when registering a class id twice."""

    def __init__(self, class_id: str):
        super().__init__(
            message=f"Class {class_id} already exists",
            error_code="CLASS_ALREADY_EXISTS",
            status_code=409,
        )


class InvalidCapacityError(EnrollmentServiceError):
    """Raised when a capacity value is negative or below the enrolled count."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="INVALID_CAPACITY",
            status_code=400,
        )


class NoActiveOfferError(EnrollmentServiceError):
    """Raised when responding to a waitlist offer that does not exist."""

    def __init__(self, class_id: str, student_id: str):
        super().__init__(
            message=f"Student {student_id} has no open waitlist offer for class {class_id}",
            error_code="NO_ACTIVE_OFFER",
            status_code=409,
        )


class StorageError(EnrollmentServiceError):
    """Raised (or synthesized) when the persistence layer fails mid-operation."""

    def __init__(self, message: str = "Storage failure. The operation was not applied."):
        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            status_code=503,
        )

# backend/artschool/errors.py
"""Domain errors raised by the services and rendered by the API layer."""


class ArtSchoolError(Exception):
    """Base class; ``status_code`` is the HTTP status the API answers with."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ArtSchoolError):
    """Malformed or out-of-range input, detected before any write."""


class InvalidReference(ArtSchoolError):
    """A foreign id does not resolve to the expected entity or role."""


class DependencyConflict(ArtSchoolError):
    """Deletion blocked by a record that still references the target."""


class InvalidTimeRange(ArtSchoolError):
    """A lesson whose end is not after its start."""


class DuplicateEnrollment(ArtSchoolError):
    """The student already holds a paid order for the course."""


class SchemaError(ArtSchoolError):
    """Import file is unreadable or misses required columns."""


class NotFound(ArtSchoolError):
    status_code = 404


class PersistenceError(ArtSchoolError):
    status_code = 500

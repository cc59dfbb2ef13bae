"""
Error taxonomy for the ZMemory API.

Services raise these; the handlers registered in ``zmemory.main`` turn them
into ``{"error": ..., "details": ...}`` JSON bodies with the matching status.
"""
from typing import Any, Optional

from fastapi import status

from zmemory.schemas import serialize_entry


class ZMemoryError(Exception):
    """Base error. Maps to a 500 unless a subclass says otherwise."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class UnauthorizedError(ZMemoryError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class NotFoundError(ZMemoryError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationError(ZMemoryError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class ConflictError(ZMemoryError):
    """
    Another timer is running.

    ``entry`` is the running TimeEntry, serialized on construction: the
    request's session is rolled back and closed before handlers run.
    """
    status_code = status.HTTP_409_CONFLICT
    default_message = "Another timer is running"

    def __init__(self, message: Optional[str] = None, entry: Any = None):
        self.entry = serialize_entry(entry) if entry is not None else None
        super().__init__(message, details={"entry": self.entry})

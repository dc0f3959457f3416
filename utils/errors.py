# utils/errors.py
from contextlib import contextmanager
from typing import Optional

from pymongo.errors import DuplicateKeyError, PyMongoError


class ComplaintError(Exception):
    """Base class for errors raised by the complaint core.

    Every subclass carries a stable ``code`` and the HTTP status the boundary
    layer should answer with; the message is meant for humans.
    """

    code = "complaint_error"
    http_status = 500

    def __init__(self, message: str, *, operation: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.key = key

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class InvalidArgument(ComplaintError):
    code = "invalid_argument"
    http_status = 400


class NotFound(ComplaintError):
    code = "not_found"
    http_status = 404


class BusinessRuleViolation(ComplaintError):
    code = "business_rule_violation"
    http_status = 422


class Conflict(ComplaintError):
    code = "conflict"
    http_status = 409


class StorageUnavailable(ComplaintError):
    code = "storage_unavailable"
    http_status = 503


@contextmanager
def storage_guard(operation: str, key: Optional[str] = None):
    """Translate PyMongo failures into core errors carrying operation + key."""
    try:
        yield
    except DuplicateKeyError as e:
        raise Conflict(f"{operation}: duplicate key ({key})", operation=operation, key=key) from e
    except PyMongoError as e:
        raise StorageUnavailable(f"{operation} failed for {key}: {e}", operation=operation, key=key) from e

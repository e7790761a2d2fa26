"""Typed failures raised by the repository, payload parsers and tools.

Every failure carries a machine-readable ``code`` and a human message so
the tool layer can hand back a structured error instead of a traceback.
"""

from typing import Any, Dict, Optional


class FamtreeError(Exception):
    """Base class for expected, caller-facing failures."""

    code = "error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidArgument(FamtreeError):
    """Argument is out of range or of the wrong type."""

    code = "invalid_argument"


class MissingId(FamtreeError):
    """Person id is missing."""

    code = "missing_id"


class MissingParticipant(FamtreeError):
    """One or more people of the relation do not exist."""

    code = "missing_participant"


class AmbiguousMatch(FamtreeError):
    """Database returned more rows than expected."""

    code = "ambiguous_match"


class NotFound(FamtreeError):
    """Requested record does not exist."""

    code = "not_found"


class ValidationFailure(FamtreeError):
    """Payload failed validation."""

    code = "invalid_payload"


class CircularRelation(ValidationFailure):
    """Circular relations are not allowed."""

    code = "circular_relation"


class ConflictingRelation(ValidationFailure):
    """Conflicting relation directives."""

    code = "conflicting_relation"


class PermissionDenied(FamtreeError):
    """Unauthorized."""

    code = "permission_denied"


class Unauthenticated(PermissionDenied):
    """Authentication required."""

    code = "unauthenticated"


class UsernameTaken(FamtreeError):
    """Username is already in use."""

    code = "username_taken"

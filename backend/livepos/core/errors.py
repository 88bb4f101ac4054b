"""Error taxonomy for command handling.

Every error here carries a message that is safe to send back to the client
that issued the command. Nothing else ever sees it.
"""

from typing import Optional

from pydantic import ValidationError as PydanticValidationError


class PosError(Exception):
    """Base class for errors reported to the calling client."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(PosError):
    """Malformed or missing input, or an illegal state transition."""


class AuthorizationError(PosError):
    """Caller lacks the capability required by the command."""


class NotFoundError(PosError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class PersistenceError(PosError):
    """The backing file could not be read or written."""


def ensure(condition: object, message: str) -> None:
    """Raise ValidationError with ``message`` unless ``condition`` holds."""
    if not condition:
        raise ValidationError(message)


def from_pydantic(exc: PydanticValidationError) -> ValidationError:
    """Convert a pydantic error into a single client-facing ValidationError."""
    errors = exc.errors()
    if not errors:
        return ValidationError("Invalid payload")
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    if first.get("type") == "missing":
        return ValidationError(f"{field} is required")
    message = first.get("msg", "is invalid")
    return ValidationError(f"{field}: {message}" if field else message)

# Overview: Typed domain failures raised by services and serialized at the HTTP boundary.

"""
Domain error taxonomy.

Every failure a caller can recover from is one of the classes below. Each
carries a stable `kind` plus the offending field/status so the HTTP layer
(or any other caller) can decide between retry and a user-facing message.
Storage connectivity errors are NOT wrapped here; they propagate as-is.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for recoverable domain failures."""

    kind = "DomainError"
    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        payload.update(self.details())
        return payload


class Unauthorized(DomainError):
    """Principal is inactive, anonymous, or lacks the required permission."""

    kind = "Unauthorized"
    http_status = 403

    def __init__(self, message: str, *, resource: str | None = None, action: str | None = None):
        super().__init__(message)
        self.resource = resource
        self.action = action

    def details(self) -> dict:
        if self.resource is None:
            return {}
        return {"resource": self.resource, "action": self.action}


class NotFound(DomainError):
    kind = "NotFound"
    http_status = 404

    def __init__(self, entity: str, key):
        super().__init__(f"{entity} {key} not found")
        self.entity = entity
        self.key = key

    def details(self) -> dict:
        return {"entity": self.entity, "key": self.key}


class InvalidTransition(DomainError):
    """
    The store's current status does not allow the requested operation.

    Also raised when a conditional update loses a race: the status observed
    at read time no longer matched at write time.
    """

    kind = "InvalidTransition"
    http_status = 409

    def __init__(self, current_status: str | None, requested: str, message: str | None = None):
        super().__init__(
            message
            or f"Cannot {requested} while store status is '{current_status}'"
        )
        self.current_status = current_status
        self.requested = requested

    def details(self) -> dict:
        return {"current_status": self.current_status, "requested": self.requested}


class InvalidAssignee(DomainError):
    kind = "InvalidAssignee"
    http_status = 422

    def __init__(self, user_id, required_role: str, message: str | None = None):
        super().__init__(message or f"User {user_id} does not hold role {required_role}")
        self.user_id = user_id
        self.required_role = required_role

    def details(self) -> dict:
        return {"user_id": self.user_id, "required_role": self.required_role}


class DuplicateKey(DomainError):
    kind = "DuplicateKey"
    http_status = 409

    def __init__(self, field: str, value):
        super().__init__(f"{field} '{value}' already exists")
        self.field = field
        self.value = value

    def details(self) -> dict:
        return {"field": self.field, "value": self.value}


class ValidationFailed(DomainError):
    """400-level input problem."""

    kind = "ValidationFailed"
    http_status = 400

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field

    def details(self) -> dict:
        return {"field": self.field} if self.field else {}

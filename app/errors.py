# app/errors.py
"""Error types raised by services and mapped to HTTP responses in app.main."""


class MarketError(Exception):
    """Base exception for the marketplace backend."""
    pass


class FieldValidationError(MarketError):
    """A single input field failed validation."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class NotFoundError(MarketError):
    """Requested entity does not exist."""

    def __init__(self, entity: str, key):
        super().__init__(f"{entity} {key} not found")
        self.entity = entity
        self.key = key


class InvalidStateError(MarketError):
    """Operation is not allowed in the entity's current state."""
    pass


class PermissionDeniedError(MarketError):
    """Caller is not allowed to act on this entity."""
    pass

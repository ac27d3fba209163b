from typing import Optional
from uuid import UUID


class EntityNotFound(LookupError):
    def __init__(self, entity_type: str, entity_id: UUID):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")


class TransitionConflict(Exception):
    """
    The entity was not in the status the transition requires.

    Raised when another agent won the race or the entity is already terminal.
    `current_status` is what the store held when the update matched nothing,
    so callers can re-fetch and show the real state.
    """

    def __init__(self, entity_type: str, entity_id: UUID, action: str,
                 current_status: Optional[str] = None, detail: Optional[str] = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        self.current_status = current_status
        message = detail or f"Cannot {action} {entity_type} {entity_id} in status '{current_status}'"
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "message": str(self),
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id),
            "action": self.action,
            "current_status": self.current_status,
        }


class ResolutionValidationError(ValueError):
    """A required input for the requested outcome is missing. Nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class KeywordQuotaExceeded(Exception):
    """One of the keyword caps blocked an add. `cap` is 'agent', 'global' or 'daily'."""

    def __init__(self, cap: str, limit: int, current: int):
        self.cap = cap
        self.limit = limit
        self.current = current
        labels = {
            "agent": f"Personal keyword limit reached ({limit})",
            "global": f"Global keyword limit reached ({limit})",
            "daily": f"Daily limit reached ({limit}/day)",
        }
        super().__init__(labels.get(cap, f"Keyword limit reached ({limit})"))


class KeywordPermissionDenied(PermissionError):
    pass

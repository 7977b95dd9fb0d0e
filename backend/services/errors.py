"""
Error types raised by the reputation core
"""

from typing import Optional
from uuid import UUID


class PersonaLedgerError(Exception):
    """Base class for reputation core errors"""
    pass


class PersonaNotFoundError(PersonaLedgerError):
    """Raised when a referenced persona does not exist"""

    def __init__(self, persona_id: UUID, message: Optional[str] = None):
        self.persona_id = persona_id
        super().__init__(message or f"Persona {persona_id} not found")


class TemplateNotFoundError(PersonaNotFoundError):
    """Raised when a referenced persona template does not exist"""

    def __init__(self, template_id: UUID):
        self.template_id = template_id
        super().__init__(template_id, f"Persona template {template_id} not found")


class ActionNotFoundError(PersonaLedgerError):
    """Raised when an artifact references an action that was never logged"""

    def __init__(self, action_id: UUID):
        self.action_id = action_id
        super().__init__(f"Persona action {action_id} not found")


class InvalidPersonaStateError(PersonaLedgerError):
    """Raised when an operation needs an active persona but it is inactive"""

    def __init__(self, persona_id: UUID, activity_type: str):
        self.persona_id = persona_id
        self.activity_type = activity_type
        super().__init__(
            f"Persona {persona_id} is inactive and cannot receive {activity_type}"
        )


class QuotaExceededError(PersonaLedgerError):
    """Raised when the daily cap for a feedback kind is already consumed"""

    def __init__(self, persona_id: Optional[UUID], activity_type: str, used: int, limit: int):
        self.persona_id = persona_id
        self.activity_type = activity_type
        self.used = used
        self.limit = limit
        super().__init__(
            f"Daily {activity_type} quota exhausted for persona {persona_id} ({used}/{limit})"
        )


class PersistenceFailureError(PersonaLedgerError):
    """Raised when a reputation event could not be committed"""
    pass


class TransientPersistenceError(PersonaLedgerError):
    """Raised by a store when a unit of work failed but can be retried as a whole"""
    pass


class LedgerInconsistencyError(AssertionError):
    """Ledger deltas no longer add up to the persona's scores"""
    pass

"""
Repository layer for persona storage
"""

from .base import PersonaStore, PersonaUnitOfWork
from .memory_repository import InMemoryPersonaRepository
from .persona_repository import PersonaRepository

__all__ = [
    "PersonaStore",
    "PersonaUnitOfWork",
    "InMemoryPersonaRepository",
    "PersonaRepository"
]

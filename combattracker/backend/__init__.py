"""Backend package for the combat tracker."""

from .config import CombatSettings, load_settings
from .errors import (
    CombatError,
    ConflictError,
    ExhaustedCodespace,
    InvalidRange,
    NotFoundError,
    RangeConflict,
    SessionEndedError,
    TransientStoreError,
    ValidationError,
)
from .service import CombatService
from .store import CombatStore, InMemoryCombatStore, PostgresCombatStore, create_store

__all__ = [
    "CombatError",
    "CombatService",
    "CombatSettings",
    "CombatStore",
    "ConflictError",
    "create_store",
    "ExhaustedCodespace",
    "InMemoryCombatStore",
    "InvalidRange",
    "load_settings",
    "NotFoundError",
    "PostgresCombatStore",
    "RangeConflict",
    "SessionEndedError",
    "TransientStoreError",
    "ValidationError",
]

"""Error taxonomy shared by the combat tracking components."""

from __future__ import annotations


class CombatError(Exception):
    """Expected failure surfaced to callers as an unsuccessful result."""

    code = "error"


class ValidationError(CombatError):
    code = "validation"


class InvalidRange(ValidationError):
    pass


class NotFoundError(CombatError):
    code = "not_found"


class ConflictError(CombatError):
    """The caller's view disagrees with the store and must be refreshed."""

    code = "conflict"


class RangeConflict(ConflictError):
    pass


class SessionEndedError(ConflictError):
    pass


class ExhaustedCodespace(CombatError):
    code = "conflict"


class TransientStoreError(Exception):
    """Backing store unreachable or failing; retrying is up to the caller."""

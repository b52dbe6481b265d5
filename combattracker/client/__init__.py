"""Client side of the combat tracker: cached session state and the HTTP client."""

from .api_client import CombatApiClient, CombatApiError
from .session_cache import CachedSession, SessionCache

__all__ = [
    "CachedSession",
    "CombatApiClient",
    "CombatApiError",
    "SessionCache",
]

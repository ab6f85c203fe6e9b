"""Request-scoped sessions with flash data and CSRF protection for FastAPI."""

from sessionguard.core.config import CsrfConfig, SameSite, SessionConfig, Settings
from sessionguard.core.exceptions import (
    ConfigurationError,
    CsrfTokenMismatchError,
    SessionError,
    SessionGuardError,
    StoreStartError
)
from sessionguard.core.security import CsrfGuard
from sessionguard.models.cookies import CookieQueue, SetCookie
from sessionguard.models.session_state import Session
from sessionguard.services.cookie_store import SignedCookieSessionStore
from sessionguard.services.session_store import MemorySessionStore, SessionStore

__all__ = [
    'ConfigurationError',
    'CookieQueue',
    'CsrfConfig',
    'CsrfGuard',
    'CsrfTokenMismatchError',
    'MemorySessionStore',
    'SameSite',
    'Session',
    'SessionConfig',
    'SessionError',
    'SessionGuardError',
    'SessionStore',
    'SetCookie',
    'Settings',
    'SignedCookieSessionStore',
    'StoreStartError'
]

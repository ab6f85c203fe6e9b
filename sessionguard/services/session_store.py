# sessionguard/services/session_store.py
"""
Raw key-value persistence boundary for sessions.

A store holds the data of exactly one session. The Session layered on top
of it owns flash aging and save semantics; the store only starts, reads,
writes, regenerates and destroys.
"""
import copy
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from sessionguard.models.cookies import SetCookie

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Abstract base class for all session stores"""

    @abstractmethod
    def start(self) -> None:
        """
        Start the store.

        Raises:
            StoreStartError: If the store cannot be started
        """

    @abstractmethod
    def is_started(self) -> bool:
        pass

    @abstractmethod
    def read(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    def write(self, data: Dict[str, Any]) -> None:
        """
        Persist the full session mapping.

        A store may close itself after writing; callers check
        is_started() afterwards.
        """

    @abstractmethod
    def regenerate_id(self, delete_old: bool = True) -> None:
        pass

    @abstractmethod
    def destroy(self) -> None:
        pass

    def outgoing_cookie(self) -> Optional[SetCookie]:
        """Cookie the store needs sent with the response, if any"""
        return None

    def commit(self) -> None:
        """Called once the outgoing cookie has been handed to the response"""


class MemorySessionStore(SessionStore):
    """
    In-memory store for tests and stateless deployments.

    Keeps the data of a single session and stays started after write.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._started = False
        self._data: Dict[str, Any] = copy.deepcopy(data) if data else {}
        self.session_id = secrets.token_urlsafe(32)

    def start(self) -> None:
        self._started = True

    def is_started(self) -> bool:
        return self._started

    def read(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def write(self, data: Dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)

    def regenerate_id(self, delete_old: bool = True) -> None:
        self.session_id = secrets.token_urlsafe(32)
        logger.debug(f"Regenerated in-memory session id {self.session_id[:8]}...")

    def destroy(self) -> None:
        self._data = {}
        self._started = False

# tests/conftest.py
"""
Shared fixtures for sessionguard tests.

Provides spy stores, sessions over in-memory stores and a small FastAPI
application wired with the session and CSRF middleware.
"""

import copy
from typing import Any, Dict, Optional

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from sessionguard.core.config import CsrfConfig
from sessionguard.core.security import CsrfGuard
from sessionguard.middleware.security_middleware import (
    CsrfMiddleware,
    SessionMiddleware,
    configure_middleware,
    get_csrf_token,
    get_session
)
from sessionguard.models.session_state import Session
from sessionguard.services.session_store import MemorySessionStore, SessionStore


class SessionStoreSpy(SessionStore):
    """Records starts and writes; stays started after write"""

    def __init__(self):
        self.started = False
        self.starts = 0
        self.writes = 0
        self.data: Dict[str, Any] = {}

    def start(self) -> None:
        self.starts += 1
        self.started = True

    def is_started(self) -> bool:
        return self.started

    def read(self) -> Dict[str, Any]:
        return copy.deepcopy(self.data)

    def write(self, data: Dict[str, Any]) -> None:
        self.writes += 1
        self.data = copy.deepcopy(data)

    def regenerate_id(self, delete_old: bool = True) -> None:
        pass

    def destroy(self) -> None:
        self.data = {}
        self.started = False


class CloseOnWriteStore(SessionStore):
    """Closes itself after every write, like a native cookie session"""

    def __init__(self):
        self.started = False
        self.data: Dict[str, Any] = {}

    def start(self) -> None:
        self.started = True

    def is_started(self) -> bool:
        return self.started

    def read(self) -> Dict[str, Any]:
        return copy.deepcopy(self.data)

    def write(self, data: Dict[str, Any]) -> None:
        if not self.started:
            return
        self.data = copy.deepcopy(data)
        self.started = False

    def regenerate_id(self, delete_old: bool = True) -> None:
        pass

    def destroy(self) -> None:
        self.data = {}
        self.started = False


@pytest.fixture
def memory_store():
    return MemorySessionStore()


@pytest.fixture
def session(memory_store):
    """Started session over an in-memory store"""
    session = Session(memory_store)
    session.start()
    return session


@pytest.fixture
def store_spy():
    return SessionStoreSpy()


def build_app(
    store: SessionStore,
    csrf_config: Optional[CsrfConfig] = None,
    with_cookie_queue: bool = True
) -> FastAPI:
    """Minimal app with a token echo route and a protected write route"""
    app = FastAPI()
    guard = CsrfGuard(csrf_config)

    if with_cookie_queue:
        configure_middleware(app, lambda request: store, guard)
    else:
        app.middleware("http")(CsrfMiddleware(guard))
        app.middleware("http")(SessionMiddleware(lambda request: store))

    @app.get("/token")
    def token(token: Optional[str] = Depends(get_csrf_token)):
        return {"token": token}

    @app.post("/submit")
    def submit(token: Optional[str] = Depends(get_csrf_token)):
        return {"ok": True, "token": token}

    @app.post("/fail")
    def fail(session: Session = Depends(get_session)):
        session.set("before_failure", True)
        raise RuntimeError("handler failed")

    return app


@pytest.fixture
def client_factory():
    """Build a TestClient for a store and optional CSRF config"""
    def factory(store: SessionStore, csrf_config: Optional[CsrfConfig] = None, **kwargs) -> TestClient:
        return TestClient(build_app(store, csrf_config, **kwargs), raise_server_exceptions=False)
    return factory

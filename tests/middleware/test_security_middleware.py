# tests/middleware/test_security_middleware.py
"""
Tests for the session, CSRF and cookie queue middleware through a real
FastAPI application and TestClient.
"""

import json

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from sessionguard.core.config import CsrfConfig, SessionConfig
from sessionguard.core.exceptions import CsrfTokenMismatchError
from sessionguard.core.security import CsrfGuard
from sessionguard.middleware.security_middleware import (
    CsrfMiddleware,
    SessionMiddleware,
    configure_middleware,
    get_session
)
from sessionguard.models.cookies import CookieQueue
from sessionguard.models.session_state import Session
from sessionguard.services.cookie_store import SignedCookieSessionStore
from sessionguard.services.session_store import MemorySessionStore

from conftest import SessionStoreSpy


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def client(store, client_factory):
    return client_factory(store)


def fetch_token(client):
    response = client.get("/token")
    assert response.status_code == 200
    return response.json()["token"]


def cookie_store_app() -> FastAPI:
    """App backed by the signed-cookie store, which closes itself after writes"""
    app = FastAPI()
    config = SessionConfig(secure=False)
    configure_middleware(
        app,
        lambda request: SignedCookieSessionStore.from_request(request, config, "test-secret"),
        CsrfGuard()
    )

    @app.get("/session")
    def read(session: Session = Depends(get_session)):
        return session.all()

    @app.get("/boom")
    def boom(session: Session = Depends(get_session)):
        session.set("before_failure", True)
        raise RuntimeError("handler failed")

    @app.post("/logout")
    def logout(session: Session = Depends(get_session)):
        session.set("secret", 1)
        session.save()
        session.destroy()
        return {"ok": True}

    return app


class TestSessionMiddleware:

    def test_session_started_and_saved_once(self, client_factory):
        store = SessionStoreSpy()
        client = client_factory(store)

        client.get("/token")

        assert store.started
        assert store.writes == 1

    def test_session_saved_when_handler_fails(self, store, client):
        token = fetch_token(client)

        response = client.post("/fail", headers={"X-XSRF-TOKEN": token})

        assert response.status_code == 500
        assert store.read()["before_failure"] is True

    def test_cookie_store_session_kept_when_handler_fails(self):
        client = TestClient(cookie_store_app())

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}
        assert "sessionguard_session" in response.cookies
        data = client.get("/session").json()
        assert data["before_failure"] is True
        assert data["csrf_token"]

    def test_cookie_store_destroy_after_save_ends_session(self):
        client = TestClient(cookie_store_app())
        token = client.get("/session").json()["csrf_token"]

        response = client.post("/logout", headers={"X-XSRF-TOKEN": token})

        assert response.status_code == 200
        data = client.get("/session").json()
        assert "secret" not in data
        assert data["csrf_token"] != token

    def test_session_saved_when_csrf_rejects(self, store, client):
        response = client.post("/submit")

        assert response.status_code == 419
        assert store.read()["csrf_token"]


class TestCsrfMiddleware:

    def test_get_receives_token(self, store, client):
        token = fetch_token(client)

        assert token
        assert store.read()["csrf_token"] == token

    def test_token_stable_across_requests(self, client):
        assert fetch_token(client) == fetch_token(client)

    def test_post_without_token_rejected(self, client):
        response = client.post("/submit")

        assert response.status_code == 419
        assert response.json() == {"detail": "CSRF token mismatch."}

    def test_post_with_wrong_token_rejected(self, client):
        fetch_token(client)

        response = client.post("/submit", headers={"X-XSRF-TOKEN": "wrong"})

        assert response.status_code == 419

    def test_post_with_header_token(self, client):
        token = fetch_token(client)

        response = client.post("/submit", headers={"X-XSRF-TOKEN": token})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "token": token}

    def test_post_with_fallback_header(self, client):
        token = fetch_token(client)

        response = client.post("/submit", headers={"X-CSRF-Token": token})

        assert response.status_code == 200

    def test_post_with_form_field(self, client):
        token = fetch_token(client)

        response = client.post("/submit", data={"_token": token, "title": "hello"})

        assert response.status_code == 200

    def test_post_with_json_field(self, client):
        token = fetch_token(client)

        response = client.post("/submit", json={"_token": token})

        assert response.status_code == 200

    def test_post_with_json_field_mixed_case_content_type(self, client):
        token = fetch_token(client)

        response = client.post(
            "/submit",
            content=json.dumps({"_token": token}),
            headers={"content-type": "Application/JSON"}
        )

        assert response.status_code == 200

    def test_token_dependency_follows_configured_attribute(self, store, client_factory):
        client = client_factory(store, CsrfConfig(attribute="xsrf"))

        token = fetch_token(client)

        assert token
        assert token == store.read()["csrf_token"]

    def test_invalid_json_body_is_rejected(self, client):
        fetch_token(client)

        response = client.post("/submit", content=b"{not json", headers={"content-type": "application/json"})

        assert response.status_code == 419

    def test_rotation_on_success(self, store, client_factory):
        client = client_factory(store, CsrfConfig(rotate=True))
        token = fetch_token(client)

        response = client.post("/submit", headers={"X-XSRF-TOKEN": token})

        rotated = response.json()["token"]
        assert response.status_code == 200
        assert rotated != token
        assert store.read()["csrf_token"] == rotated
        assert response.cookies["XSRF-TOKEN"] == rotated

    def test_old_token_rejected_after_rotation(self, client_factory, store):
        client = client_factory(store, CsrfConfig(rotate=True))
        token = fetch_token(client)
        client.post("/submit", headers={"X-XSRF-TOKEN": token})

        response = client.post("/submit", headers={"X-XSRF-TOKEN": token})

        assert response.status_code == 419

    def test_excluded_path_skips_protection(self, store, client_factory):
        client = client_factory(store, CsrfConfig(excluded_paths=("/sub*",)))

        response = client.post("/submit")

        assert response.status_code == 200
        assert response.json()["token"] is None
        assert "XSRF-TOKEN" not in response.cookies

    def test_absolute_exclusion(self, store, client_factory):
        client = client_factory(store, CsrfConfig(excluded_paths=("http://testserver/submit",)))

        assert client.post("/submit").status_code == 200

    def test_route_level_mismatch_uses_handler(self, store):
        app = FastAPI()
        configure_middleware(app, lambda request: store, CsrfGuard())

        @app.get("/explicit")
        def explicit():
            raise CsrfTokenMismatchError()

        response = TestClient(app).get("/explicit")

        assert response.status_code == 419
        assert response.json() == {"detail": "CSRF token mismatch."}

    def test_missing_session_middleware_fails(self):
        app = FastAPI()
        app.middleware("http")(CsrfMiddleware(CsrfGuard()))

        @app.get("/")
        def index():
            return {}

        response = TestClient(app, raise_server_exceptions=False).get("/")

        assert response.status_code == 500


class TestSyncCookie:

    def test_cookie_set_directly_without_queue(self, store, client_factory):
        client = client_factory(store, with_cookie_queue=False)

        response = client.get("/token")

        assert response.cookies["XSRF-TOKEN"] == response.json()["token"]

    def test_cookie_flushed_from_queue(self, client):
        response = client.get("/token")

        assert response.cookies["XSRF-TOKEN"] == response.json()["token"]
        assert len(response.headers.get_list("set-cookie")) == 1

    def test_exactly_one_cookie_queued(self, store):
        queues = []
        app = FastAPI()
        app.middleware("http")(CsrfMiddleware(CsrfGuard(CsrfConfig(cookie_name="MY-XSRF"))))
        app.middleware("http")(SessionMiddleware(lambda request: store))

        @app.middleware("http")
        async def attach_queue(request, call_next):
            queue = CookieQueue()
            queues.append(queue)
            request.state.cookie_queue = queue
            return await call_next(request)

        @app.get("/")
        def index():
            return {}

        response = TestClient(app).get("/")

        cookies = queues[0].flush()
        assert len(cookies) == 1
        assert cookies[0].name == "MY-XSRF"
        assert cookies[0].value == store.read()["csrf_token"]
        assert "set-cookie" not in response.headers

    def test_secure_flag_follows_scheme(self, store):
        app = FastAPI()
        configure_middleware(app, lambda request: store, CsrfGuard())

        @app.get("/")
        def index():
            return {}

        secure = TestClient(app, base_url="https://testserver").get("/")
        plain = TestClient(app).get("/")

        assert "secure" in secure.headers["set-cookie"].lower()
        assert "secure" not in plain.headers["set-cookie"].lower()

# sessionguard/main.py
"""
FastAPI application exposing session state and CSRF protection.

The endpoints are deliberately small: they read and mutate the request's
session so clients (and tests) can drive the full lifecycle over HTTP.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from pydantic import BaseModel

from sessionguard.core.config import Settings, get_secret_key, validate_required_settings
from sessionguard.core.exceptions import config_error
from sessionguard.core.logging_config import setup_logging
from sessionguard.core.security import CsrfGuard
from sessionguard.middleware.security_middleware import (
    StoreFactory,
    configure_middleware,
    get_csrf_token,
    get_session
)
from sessionguard.models.session_state import Session
from sessionguard.services.cookie_store import SignedCookieSessionStore
from sessionguard.services.session_store import MemorySessionStore

logger = setup_logging()


class SessionValue(BaseModel):
    value: Any


class FlashMessage(BaseModel):
    key: str
    value: Any


def build_store_factory(settings: Settings) -> StoreFactory:
    """Pick the session store configured in settings"""
    if settings.SESSION_STORE == "cookie":
        session_config = settings.session_config()
        secret_key = get_secret_key(settings)

        def cookie_store(request: Request) -> SignedCookieSessionStore:
            return SignedCookieSessionStore.from_request(request, session_config, secret_key)

        return cookie_store

    if settings.SESSION_STORE == "memory":
        logger.warning("⚠️ Memory session store: all clients share one session")
        store = MemorySessionStore()
        return lambda request: store

    raise config_error(f"Unknown session store '{settings.SESSION_STORE}'", component="SESSION_STORE")


def create_app(
    settings: Optional[Settings] = None,
    store_factory: Optional[StoreFactory] = None
) -> FastAPI:
    """Application factory"""
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info(f"🚀 {settings.APP_NAME} starting...")
        logger.info(f"  - Session store: {settings.SESSION_STORE}")
        logger.info(f"  - CSRF methods: {', '.join(guard.config.methods)}")
        logger.info(f"  - CSRF exclusions: {len(guard.config.excluded_paths)}")
        logger.info("=" * 60)
        yield
        logger.info(f"🛑 {settings.APP_NAME} shutting down...")

    validate_required_settings(settings)

    guard = CsrfGuard(settings.csrf_config())
    store_factory = store_factory or build_store_factory(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Session state and CSRF protection",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None
    )

    configure_middleware(app, store_factory, guard)

    # Registered last so it wraps everything, including the session layer
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests"""
        logger.info(f"📥 Request: {request.method} {request.url.path}")
        response = await call_next(request)
        if response.status_code >= 400:
            logger.info(f"📤 {request.method} {request.url.path} -> {response.status_code}")
        return response

    @app.get("/", status_code=200)
    def read_root():
        """Health check endpoint"""
        return {"status": "ok", "service": settings.APP_NAME}

    @app.get("/csrf-token")
    def read_csrf_token(token: Optional[str] = Depends(get_csrf_token)) -> Dict[str, Optional[str]]:
        return {"csrf_token": token}

    @app.get("/session")
    def read_session(session: Session = Depends(get_session)) -> Dict[str, Any]:
        return {"data": session.all()}

    @app.put("/session/{key}")
    def write_session_value(key: str, body: SessionValue, session: Session = Depends(get_session)):
        session.set(key, body.value)
        return {"key": key, "value": body.value}

    @app.delete("/session/{key}")
    def pull_session_value(key: str, session: Session = Depends(get_session)):
        """Remove a value and return what it was"""
        return {"key": key, "value": session.pull(key)}

    @app.post("/flash")
    def flash_message(body: FlashMessage, session: Session = Depends(get_session)):
        session.flash(body.key, body.value)
        return {"key": body.key, "value": body.value}

    @app.get("/flash/{key}")
    def read_flash(key: str, session: Session = Depends(get_session)):
        return {"key": key, "value": session.get_flash(key)}

    @app.post("/session/regenerate")
    def regenerate_session(session: Session = Depends(get_session)):
        session.regenerate(delete_old=True)
        return {"status": "regenerated"}

    @app.delete("/session")
    def destroy_session(session: Session = Depends(get_session)):
        session.destroy()
        return {"status": "destroyed"}

    return app


app = create_app()


# Main entry point
if __name__ == "__main__":
    import uvicorn

    port = 8000
    logger.info(f"🚀 Starting server on port {port}...")
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info"
    )

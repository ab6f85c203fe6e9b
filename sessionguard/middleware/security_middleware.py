"""
Middleware wiring sessions and CSRF protection into the request pipeline.

Order (outermost first): cookie queue -> session -> CSRF -> handler.
Each middleware is a plain ``async (request, call_next)`` callable so it can
be registered with ``app.middleware("http")``.
"""

import json
import logging
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from sessionguard.core.exceptions import CsrfTokenMismatchError, SessionError
from sessionguard.core.security import CsrfGuard, build_full_url
from sessionguard.models.cookies import CookieQueue, SetCookie
from sessionguard.models.session_state import Session
from sessionguard.services.session_store import SessionStore

logger = logging.getLogger(__name__)

SESSION_ATTRIBUTE = "session"
COOKIE_QUEUE_ATTRIBUTE = "cookie_queue"
# Names the request.state attribute that holds the CSRF token
CSRF_ATTRIBUTE_KEY = "csrf_attribute"

StoreFactory = Callable[[Request], SessionStore]


def csrf_mismatch_response(exc: CsrfTokenMismatchError) -> JSONResponse:
    """Render a token mismatch as its own status code"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=exc.headers()
    )


async def csrf_mismatch_handler(request: Request, exc: CsrfTokenMismatchError) -> JSONResponse:
    """Exception handler for mismatches raised inside route handlers"""
    logger.warning(f"🚫 CSRF token mismatch: {request.method} {request.url.path}")
    return csrf_mismatch_response(exc)


def send_cookie(request: Request, response: Response, cookie: SetCookie, queue_attribute: str) -> None:
    """Queue the cookie if the request carries a cookie queue, else set it directly."""
    queue = getattr(request.state, queue_attribute, None)
    if queue is not None:
        queue.queue(cookie)
    else:
        cookie.apply(response)


class CookieQueueMiddleware:
    """Collects cookies for the request and writes them in one pass"""

    def __init__(self, attribute: str = COOKIE_QUEUE_ATTRIBUTE):
        self.attribute = attribute

    async def __call__(self, request: Request, call_next: Callable) -> Response:
        queue = CookieQueue()
        setattr(request.state, self.attribute, queue)

        response = await call_next(request)

        for cookie in queue.flush():
            cookie.apply(response)
        return response


class SessionMiddleware:
    """
    Starts a Session per request, exposes it on request.state and saves it
    after the handler, even when the handler raises.
    """

    def __init__(
        self,
        store_factory: StoreFactory,
        attribute: str = SESSION_ATTRIBUTE,
        cookie_queue_attribute: str = COOKIE_QUEUE_ATTRIBUTE
    ):
        self.store_factory = store_factory
        self.attribute = attribute
        self.cookie_queue_attribute = cookie_queue_attribute

    async def __call__(self, request: Request, call_next: Callable) -> Response:
        store = self.store_factory(request)
        session = Session(store)
        session.start()

        setattr(request.state, self.attribute, session)

        try:
            response = await call_next(request)
        except Exception as e:
            # Rendered here so the session cookie still reaches the client
            logger.error(f"Unhandled error in {request.method} {request.url.path}: {e}", exc_info=True)
            response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
        finally:
            session.save()

        cookie = store.outgoing_cookie()
        if cookie is not None:
            send_cookie(request, response, cookie, self.cookie_queue_attribute)
            store.commit()

        return response


class CsrfMiddleware:
    """Runs the CSRF guard using the session placed on the request"""

    def __init__(self, guard: CsrfGuard, session_attribute: str = SESSION_ATTRIBUTE):
        self.guard = guard
        self.session_attribute = session_attribute

    async def __call__(self, request: Request, call_next: Callable) -> Response:
        config = self.guard.config
        url = request.url
        path = url.path
        setattr(request.state, CSRF_ATTRIBUTE_KEY, config.attribute)

        session = session_from_request(request, self.session_attribute)
        try:
            token = await self.guard.protect(
                session,
                request.method,
                path,
                build_full_url(url.scheme, url.hostname, url.port, path),
                request.headers,
                body_loader=lambda: self._parsed_body(request)
            )
        except CsrfTokenMismatchError as e:
            logger.warning(f"🚫 CSRF token mismatch: {request.method} {path}")
            return csrf_mismatch_response(e)

        if token is None:
            return await call_next(request)

        setattr(request.state, config.attribute, token)
        response = await call_next(request)

        cookie = self.guard.build_cookie(token, url.scheme)
        if cookie is not None:
            send_cookie(request, response, cookie, config.cookie_queue_attribute)

        return response

    async def _parsed_body(self, request: Request) -> Optional[Any]:
        """Parsed form or JSON body; the raw body stays available downstream."""
        content_type = request.headers.get("content-type", "").lower()
        body = await request.body()
        if not body:
            return None

        if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
            return await request.form()

        if "json" in content_type:
            try:
                return json.loads(body)
            except ValueError:
                logger.debug("Ignoring request body that is not valid JSON")
        return None


def session_from_request(request: Request, attribute: str = SESSION_ATTRIBUTE) -> Session:
    session = getattr(request.state, attribute, None)
    if session is None:
        raise SessionError("No session on request; is SessionMiddleware installed?")
    return session


def get_session(request: Request) -> Session:
    """FastAPI dependency returning the request's session"""
    return session_from_request(request)


def get_csrf_token(request: Request) -> Optional[str]:
    """FastAPI dependency returning the active CSRF token, if any"""
    attribute = getattr(request.state, CSRF_ATTRIBUTE_KEY, "csrf_token")
    return getattr(request.state, attribute, None)


def configure_middleware(app: FastAPI, store_factory: StoreFactory, guard: CsrfGuard) -> None:
    """
    Install cookie queue, session and CSRF middleware.

    app.middleware("http") puts the latest registration outermost, so the
    innermost middleware is registered first.
    """
    queue_attribute = guard.config.cookie_queue_attribute

    app.middleware("http")(CsrfMiddleware(guard))
    app.middleware("http")(SessionMiddleware(store_factory, cookie_queue_attribute=queue_attribute))
    app.middleware("http")(CookieQueueMiddleware(queue_attribute))
    app.add_exception_handler(CsrfTokenMismatchError, csrf_mismatch_handler)

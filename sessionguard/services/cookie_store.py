# sessionguard/services/cookie_store.py
"""
Signed-cookie session store.

The complete session payload travels in a single cookie signed with
itsdangerous. Like a native session handler it closes itself after every
write; the next start() re-opens it from the last written state.
"""
import copy
import logging
import secrets
from typing import Any, Dict, Optional

from itsdangerous import BadData, SignatureExpired, URLSafeTimedSerializer
from starlette.requests import Request

from sessionguard.core.config import SessionConfig
from sessionguard.core.exceptions import StoreStartError
from sessionguard.models.cookies import SetCookie
from sessionguard.services.session_store import SessionStore

logger = logging.getLogger(__name__)

SIGNING_SALT = "sessionguard.session"


class SignedCookieSessionStore(SessionStore):
    """Session store backed by a signed cookie"""

    def __init__(
        self,
        config: SessionConfig,
        secret_key: str,
        cookie_value: Optional[str] = None
    ):
        self.config = config
        self._serializer = URLSafeTimedSerializer(secret_key, salt=SIGNING_SALT)
        self._incoming = cookie_value
        self._started = False
        self._committed = False
        self._loaded = False
        self._data: Dict[str, Any] = {}
        self._outgoing: Optional[SetCookie] = None
        self.session_id: Optional[str] = None

    @classmethod
    def from_request(
        cls,
        request: Request,
        config: SessionConfig,
        secret_key: str
    ) -> "SignedCookieSessionStore":
        """Build a store for one request from its session cookie"""
        value = request.cookies.get(config.name)
        if value is None and not config.cookie_only:
            value = request.query_params.get(config.name)
        return cls(config, secret_key, cookie_value=value)

    def start(self) -> None:
        if self._started:
            return

        if self._committed:
            raise StoreStartError(
                "Cannot start session: cookie already sent with the response",
                session_id=self.session_id
            )

        if not self._loaded:
            self._load()
            self._loaded = True

        self._started = True
        logger.debug(f"Started cookie session {self.session_id[:8]}...")

    def is_started(self) -> bool:
        return self._started

    def read(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def write(self, data: Dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)
        self._outgoing = self._build_cookie(
            self._serializer.dumps({"id": self.session_id, "data": self._data}),
            max_age=self.config.lifetime or None
        )
        self._started = False

    def regenerate_id(self, delete_old: bool = True) -> None:
        # Nothing is kept server-side, so there is no old session to delete.
        if not self._started:
            return
        self.session_id = self._new_id()
        logger.debug(f"Regenerated cookie session id {self.session_id[:8]}...")

    def destroy(self) -> None:
        # Also applies once a write has closed the store: the cookie prepared
        # by that write must not reach the client.
        self._data = {}
        self._started = False
        self._loaded = True
        self.session_id = self._new_id()
        self._outgoing = self._build_cookie("", max_age=0)
        logger.debug("Destroyed cookie session")

    def outgoing_cookie(self) -> Optional[SetCookie]:
        return self._outgoing

    def commit(self) -> None:
        self._committed = True

    def _load(self) -> None:
        self.session_id = None
        self._data = {}

        if self._incoming:
            try:
                payload = self._serializer.loads(
                    self._incoming,
                    max_age=self.config.gc_max_lifetime
                )
                self._accept(payload)
            except SignatureExpired as e:
                logger.info("⏰ Session cookie expired")
                if not self.config.strict_mode and e.payload is not None:
                    # Signature is genuine: keep the id, drop the data
                    try:
                        payload = self._serializer.load_payload(e.payload)
                    except BadData:
                        payload = None
                    if isinstance(payload, dict) and isinstance(payload.get("id"), str):
                        self.session_id = payload["id"]
            except BadData:
                logger.warning("🔒 Rejected session cookie with invalid signature")

        if self.session_id is None:
            self.session_id = self._new_id()

    def _accept(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            logger.warning("🔒 Rejected malformed session cookie payload")
            return
        session_id = payload.get("id")
        data = payload.get("data")
        if isinstance(session_id, str) and session_id:
            self.session_id = session_id
            self._data = data if isinstance(data, dict) else {}

    def _build_cookie(self, value: str, max_age: Optional[int]) -> SetCookie:
        return SetCookie(
            name=self.config.name,
            value=value,
            max_age=max_age,
            path=self.config.path,
            domain=self.config.domain,
            secure=self.config.secure,
            http_only=self.config.http_only,
            same_site=self.config.same_site,
        )

    @staticmethod
    def _new_id() -> str:
        return secrets.token_urlsafe(32)

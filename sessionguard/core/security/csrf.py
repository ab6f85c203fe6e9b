"""
CSRF protection using a session-stored synchronizer token.

The guard is stateless: every request runs through the same steps.
1. Excluded paths pass untouched.
2. The session token is read, or issued when missing.
3. Unsafe methods must present a matching token (header first, then body).
   On success the token may be rotated.
4. The active token is sent back in a cookie so clients can echo it
   (double-submit).

Comparisons of token material use secrets.compare_digest.
"""

import re
import secrets
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from sessionguard.core.config import CsrfConfig
from sessionguard.core.exceptions import CsrfTokenMismatchError
from sessionguard.models.cookies import SetCookie
from sessionguard.models.session_state import Session

logger = logging.getLogger(__name__)

CSRF_TOKEN_BYTES = 32  # 256 bits of entropy

# Conventional header names tried after the configured one
FALLBACK_HEADER_NAMES = ("X-XSRF-TOKEN", "X-CSRF-Token")


def generate_csrf_token() -> str:
    """
    Generate a cryptographically secure CSRF token.

    Returns:
        64-character hex string (32 random bytes)
    """
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def tokens_match(expected: str, provided: str) -> bool:
    """Constant-time comparison of two tokens"""
    return secrets.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def is_absolute_pattern(pattern: str) -> bool:
    return pattern.startswith("http://") or pattern.startswith("https://")


def matches_pattern(pattern: str, value: str) -> bool:
    """
    Exact match, or glob match where "*" matches any run of characters
    across the whole value.
    """
    if pattern == value:
        return True

    if "*" not in pattern:
        return False

    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.fullmatch(regex, value, flags=re.DOTALL) is not None


def build_full_url(scheme: str, host: str, port: Optional[int], path: str) -> str:
    """Rebuild scheme://host[:port]/path, leaving out ports 80 and 443."""
    authority = host or ""
    if port is not None and port not in (80, 443):
        authority = f"{authority}:{port}"

    prefix = f"{scheme}://" if scheme else ""
    return f"{prefix}{authority}{path}"


class CsrfGuard:
    """Issues and verifies CSRF tokens against a Session"""

    def __init__(
        self,
        config: Optional[CsrfConfig] = None,
        token_factory: Callable[[], str] = generate_csrf_token
    ):
        self._config = config or CsrfConfig()
        self._token_factory = token_factory

    @property
    def config(self) -> CsrfConfig:
        return self._config

    def with_exclusions(self, patterns: Iterable[str]) -> "CsrfGuard":
        """Return a new guard that also skips the given patterns."""
        config = CsrfConfig(
            **{
                **self._config.model_dump(),
                "excluded_paths": self._config.excluded_paths + tuple(patterns),
            }
        )
        return CsrfGuard(config, token_factory=self._token_factory)

    def is_excluded(self, path: str, full_url: str) -> bool:
        for pattern in self._config.excluded_paths:
            value = full_url if is_absolute_pattern(pattern) else path
            if matches_pattern(pattern, value):
                return True
        return False

    def requires_verification(self, method: str) -> bool:
        return method.upper() in self._config.methods

    def ensure_token(self, session: Session) -> str:
        """Start the session and return its token, issuing one if missing."""
        session.start()

        token = session.get(self._config.session_key)
        if not isinstance(token, str) or token == "":
            token = self._token_factory()
            session.set(self._config.session_key, token)
            logger.debug("Issued new CSRF token")

        return token

    def token_from_headers(self, headers: Mapping[str, str]) -> Optional[str]:
        """
        Candidate token from the configured header, then the conventional
        fallbacks. Header lookup is expected to be case-insensitive.
        """
        names = [self._config.header_name]
        names += [n for n in FALLBACK_HEADER_NAMES if n.lower() != self._config.header_name.lower()]

        for name in names:
            value = headers.get(name)
            if value:
                return value
        return None

    def token_from_body(self, body: Any) -> Optional[str]:
        if not isinstance(body, Mapping):
            return None
        value = body.get(self._config.input_key)
        return value if isinstance(value, str) else None

    def verify(self, session: Session, token: str, provided: Optional[str]) -> str:
        """
        Check the provided token against the session token.

        Returns:
            The active token, rotated if rotation is enabled

        Raises:
            CsrfTokenMismatchError: If no token was provided or it does not match
        """
        if provided is None or not tokens_match(token, provided):
            raise CsrfTokenMismatchError()

        if self._config.rotate:
            token = self._token_factory()
            session.set(self._config.session_key, token)
            logger.debug("Rotated CSRF token after successful verification")

        return token

    async def protect(
        self,
        session: Session,
        method: str,
        path: str,
        full_url: str,
        headers: Mapping[str, str],
        body_loader: Optional[Callable[[], Awaitable[Any]]] = None
    ) -> Optional[str]:
        """
        Run exclusion, issuance and verification for one request.

        The body is loaded only for unsafe requests without a header token.

        Returns:
            The token to expose downstream, or None for excluded requests

        Raises:
            CsrfTokenMismatchError: If an unsafe request fails verification
        """
        if self.is_excluded(path, full_url):
            return None

        token = self.ensure_token(session)

        if self.requires_verification(method):
            provided = self.token_from_headers(headers)
            if provided is None and body_loader is not None:
                provided = self.token_from_body(await body_loader())
            token = self.verify(session, token, provided)

        return token

    def build_cookie(self, token: str, scheme: str) -> Optional[SetCookie]:
        """Synchronization cookie for the token, or None when disabled."""
        if self._config.cookie_name == "":
            return None

        secure = self._config.cookie_secure
        if secure is None:
            secure = scheme == "https"

        return SetCookie(
            name=self._config.cookie_name,
            value=token,
            path=self._config.cookie_path,
            domain=self._config.cookie_domain,
            secure=secure,
            http_only=self._config.cookie_http_only,
            same_site=self._config.cookie_same_site,
        )

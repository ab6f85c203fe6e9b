# sessionguard/core/config.py
import logging
import secrets
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class SameSite(str, Enum):
    """Cookie same-site policy"""
    LAX = "lax"
    STRICT = "strict"
    NONE = "none"


class SessionConfig(BaseModel):
    """Cookie and lifetime options of the session store"""
    name: str = "sessionguard_session"
    lifetime: int = Field(default=0, ge=0)  # 0 = browser-session cookie
    path: str = "/"
    domain: Optional[str] = None
    secure: bool = True
    http_only: bool = True
    same_site: SameSite = SameSite.LAX
    strict_mode: bool = True
    cookie_only: bool = True
    gc_max_lifetime: Optional[int] = Field(default=None, ge=1)

    model_config = {"frozen": True}


class CsrfConfig(BaseModel):
    """Options of the CSRF guard and its synchronization cookie"""
    session_key: str = "csrf_token"
    input_key: str = "_token"
    header_name: str = "X-XSRF-TOKEN"
    methods: Tuple[str, ...] = ("POST", "PUT", "PATCH", "DELETE")
    rotate: bool = False
    attribute: str = "csrf_token"
    excluded_paths: Tuple[str, ...] = ()

    cookie_name: str = "XSRF-TOKEN"  # empty disables the cookie
    cookie_path: Optional[str] = "/"
    cookie_domain: Optional[str] = None
    cookie_same_site: Optional[SameSite] = SameSite.LAX
    cookie_secure: Optional[bool] = None  # None follows the request scheme
    cookie_http_only: bool = False
    cookie_queue_attribute: str = "cookie_queue"

    model_config = {"frozen": True}

    @field_validator("methods")
    @classmethod
    def _upper_methods(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(method.strip().upper() for method in value)

    @field_validator("excluded_paths")
    @classmethod
    def _strip_patterns(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(pattern.strip() for pattern in value if pattern.strip())


class Settings(BaseSettings):
    """Application settings"""
    APP_NAME: str = "sessionguard"
    DEBUG: bool = False

    # Signing key for the cookie store
    SECRET_KEY: Optional[str] = Field(default=None)

    # "cookie" (signed cookie) or "memory" (single in-process session)
    SESSION_STORE: str = "cookie"

    # Session cookie
    SESSION_NAME: str = "sessionguard_session"
    SESSION_LIFETIME: int = 0
    SESSION_PATH: str = "/"
    SESSION_DOMAIN: Optional[str] = None
    SESSION_SECURE: bool = True
    SESSION_HTTP_ONLY: bool = True
    SESSION_SAME_SITE: SameSite = SameSite.LAX
    SESSION_STRICT_MODE: bool = True
    SESSION_COOKIE_ONLY: bool = True
    SESSION_GC_MAX_LIFETIME: Optional[int] = None

    # CSRF protection
    CSRF_SESSION_KEY: str = "csrf_token"
    CSRF_INPUT_KEY: str = "_token"
    CSRF_HEADER_NAME: str = "X-XSRF-TOKEN"
    CSRF_METHODS: List[str] = ["POST", "PUT", "PATCH", "DELETE"]
    CSRF_ROTATE: bool = False
    CSRF_ATTRIBUTE: str = "csrf_token"
    CSRF_EXCLUDED_PATHS: List[str] = []
    CSRF_COOKIE_NAME: str = "XSRF-TOKEN"
    CSRF_COOKIE_PATH: Optional[str] = "/"
    CSRF_COOKIE_DOMAIN: Optional[str] = None
    CSRF_COOKIE_SAME_SITE: Optional[SameSite] = SameSite.LAX
    CSRF_COOKIE_SECURE: Optional[bool] = None
    CSRF_COOKIE_HTTP_ONLY: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }

    def session_config(self) -> SessionConfig:
        return SessionConfig(
            name=self.SESSION_NAME,
            lifetime=self.SESSION_LIFETIME,
            path=self.SESSION_PATH,
            domain=self.SESSION_DOMAIN,
            secure=self.SESSION_SECURE,
            http_only=self.SESSION_HTTP_ONLY,
            same_site=self.SESSION_SAME_SITE,
            strict_mode=self.SESSION_STRICT_MODE,
            cookie_only=self.SESSION_COOKIE_ONLY,
            gc_max_lifetime=self.SESSION_GC_MAX_LIFETIME,
        )

    def csrf_config(self) -> CsrfConfig:
        return CsrfConfig(
            session_key=self.CSRF_SESSION_KEY,
            input_key=self.CSRF_INPUT_KEY,
            header_name=self.CSRF_HEADER_NAME,
            methods=tuple(self.CSRF_METHODS),
            rotate=self.CSRF_ROTATE,
            attribute=self.CSRF_ATTRIBUTE,
            excluded_paths=tuple(self.CSRF_EXCLUDED_PATHS),
            cookie_name=self.CSRF_COOKIE_NAME,
            cookie_path=self.CSRF_COOKIE_PATH,
            cookie_domain=self.CSRF_COOKIE_DOMAIN,
            cookie_same_site=self.CSRF_COOKIE_SAME_SITE,
            cookie_secure=self.CSRF_COOKIE_SECURE,
            cookie_http_only=self.CSRF_COOKIE_HTTP_ONLY,
        )


def validate_required_settings(settings: Settings) -> bool:
    """Check that all required settings are present"""
    missing = []

    if not settings.SECRET_KEY and settings.SESSION_STORE == "cookie":
        missing.append("SECRET_KEY")

    if missing:
        logger.warning(f"Missing environment variables: {', '.join(missing)}")
        logger.warning("Sessions will not survive a restart of the process.")
        return False

    return True


def get_secret_key(settings: Settings) -> str:
    """Get the signing key from settings or generate one for development"""
    if settings.SECRET_KEY:
        return settings.SECRET_KEY

    secret_key = secrets.token_urlsafe(32)
    logger.warning("⚠️ No SECRET_KEY set. Generated temporary signing key.")
    logger.warning("⚠️ Set SECRET_KEY environment variable for production!")
    return secret_key

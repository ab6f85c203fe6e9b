# sessionguard/models/cookies.py
"""Outgoing cookies and the per-request cookie queue."""

from typing import List, Optional

from pydantic import BaseModel
from starlette.responses import Response

from sessionguard.core.config import SameSite


class SetCookie(BaseModel):
    """A cookie to be sent with the response"""
    name: str
    value: str
    max_age: Optional[int] = None
    path: Optional[str] = "/"
    domain: Optional[str] = None
    secure: bool = False
    http_only: bool = False
    same_site: Optional[SameSite] = SameSite.LAX

    model_config = {"frozen": True}

    def apply(self, response: Response) -> None:
        """Write the cookie as a Set-Cookie header on the response."""
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=self.http_only,
            samesite=self.same_site.value if self.same_site else None,
        )


class CookieQueue:
    """
    Collects cookies during a request so they can be written to the
    response in a single pass.
    """

    def __init__(self):
        self._cookies: List[SetCookie] = []

    def queue(self, cookie: SetCookie) -> None:
        self._cookies.append(cookie)

    def flush(self) -> List[SetCookie]:
        """Return all queued cookies and empty the queue"""
        cookies, self._cookies = self._cookies, []
        return cookies

    def __len__(self) -> int:
        return len(self._cookies)

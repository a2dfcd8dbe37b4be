"""
Login credential extraction and verification.

Two encodings are accepted, tried in order:

1. ``Authorization: Basic <base64(username:password)>``
2. a form body whose ``username`` and ``password`` fields are each
   base64-encoded on their own

When the first one is present the body is never consulted, even if the
header turns out to be undecodable.
"""

import base64
import binascii
import hmac
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from fastapi import Request

from auth_proxy.vars import AUTH_USER, AUTH_PASS

logger = logging.getLogger("uvicorn.error")

BASIC_PREFIX = "Basic "


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class ExtractResult:
    """Outcome of one extractor.

    ``matched`` tells whether the request used this encoding at all;
    ``credentials`` is None when it did but could not be decoded.
    """

    matched: bool
    credentials: Optional[Credentials] = None


NOT_MATCHED = ExtractResult(matched=False)

Extractor = Callable[[Request], Awaitable[ExtractResult]]


def b64_text(value: str) -> Optional[str]:
    """Decode base64 into UTF-8 text, or None when it is not decodable.

    Missing ``=`` padding is tolerated.
    """
    try:
        padded = value + "=" * (-len(value) % 4)
        return base64.b64decode(padded, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return None


async def from_basic_header(request: Request) -> ExtractResult:
    header = request.headers.get("authorization", "")
    if not header.startswith(BASIC_PREFIX):
        return NOT_MATCHED
    decoded = b64_text(header[len(BASIC_PREFIX):].strip())
    if decoded is None or ":" not in decoded:
        logger.debug("[Login] Undecodable Basic authorization header")
        return ExtractResult(matched=True)
    username, password = decoded.split(":", 1)
    return ExtractResult(matched=True, credentials=Credentials(username, password))


async def from_form_body(request: Request) -> ExtractResult:
    try:
        form = await request.form()
    except Exception as e:
        logger.debug(f"[Login] Could not parse login form: {e}")
        return ExtractResult(matched=True)
    raw_username = form.get("username")
    raw_password = form.get("password")
    if not isinstance(raw_username, str) or not isinstance(raw_password, str):
        return ExtractResult(matched=True)
    username = b64_text(raw_username)
    password = b64_text(raw_password)
    if username is None or password is None:
        return ExtractResult(matched=True)
    return ExtractResult(matched=True, credentials=Credentials(username, password))


DEFAULT_EXTRACTORS: Sequence[Extractor] = (from_basic_header, from_form_body)


class CredentialVerifier:
    """Checks submitted credentials against the single configured pair."""

    def __init__(
        self,
        username: str = AUTH_USER,
        password: str = AUTH_PASS,
        extractors: Sequence[Extractor] = DEFAULT_EXTRACTORS,
    ):
        self._username = username
        self._password = password
        self.extractors = list(extractors)

    @property
    def username(self) -> str:
        return self._username

    async def extract(self, request: Request) -> Optional[Credentials]:
        for extractor in self.extractors:
            result = await extractor(request)
            if result.matched:
                return result.credentials
        return None

    def verify(self, username: Optional[str], password: Optional[str]) -> bool:
        if username is None or password is None:
            return False
        # Both comparisons always run
        user_ok = hmac.compare_digest(
            username.encode("utf-8"), self._username.encode("utf-8")
        )
        pass_ok = hmac.compare_digest(
            password.encode("utf-8"), self._password.encode("utf-8")
        )
        return user_ok and pass_ok

    async def authenticate(self, request: Request) -> tuple[bool, Optional[Credentials]]:
        credentials = await self.extract(request)
        if credentials is None:
            return False, None
        return self.verify(credentials.username, credentials.password), credentials

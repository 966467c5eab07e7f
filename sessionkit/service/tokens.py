from __future__ import annotations

import secrets
import time
import uuid
from dataclasses import dataclass, field
from http.cookies import CookieError, SimpleCookie
from typing import Any, Dict, Optional

from sessionkit.config import CookieOptions, Settings, TokenKind
from sessionkit.logging import get_logger
from sessionkit.service.codec import TokenCodec, TokenSigner, fingerprint_digest
from sessionkit.service.errors import AuthErrorKind, InvalidTokenError
from sessionkit.storage.models import User

logger = get_logger(__name__)

_SAME_SITE_VALUES = {"lax": "Lax", "strict": "Strict", "none": "None"}


def serialize_cookie(value: str, options: CookieOptions) -> str:
    """Render a ``Set-Cookie`` header value.

    Options are validated when settings are built, so this never raises for a
    configured ``CookieOptions``.
    """
    cookie = SimpleCookie()
    cookie[options.name] = value
    morsel = cookie[options.name]
    morsel["path"] = options.path
    morsel["max-age"] = str(options.max_age)
    if options.domain:
        morsel["domain"] = options.domain
    if options.http_only:
        morsel["httponly"] = True
    if options.secure:
        morsel["secure"] = True
    morsel["samesite"] = _SAME_SITE_VALUES[options.same_site.value]
    return morsel.OutputString()


def parse_cookies(header: Optional[str]) -> Dict[str, str]:
    """Parse a request ``Cookie`` header into a name/value dict."""
    if not header:
        return {}
    cookie = SimpleCookie()
    try:
        cookie.load(header)
    except CookieError:
        logger.warning("cookie_header_parse_failed")
        return {}
    return {name: morsel.value for name, morsel in cookie.items()}


@dataclass(frozen=True)
class FingerprintToken:
    value: str
    cookie_options: CookieOptions = field(repr=False)

    def create_cookie(self) -> str:
        return serialize_cookie(self.value, self.cookie_options)


@dataclass(frozen=True)
class EncryptedRefreshToken:
    """Ciphertext of a refresh token; the only form a client ever receives."""

    value: str
    cookie_options: CookieOptions = field(repr=False)
    codec: TokenCodec = field(repr=False, compare=False)

    def decrypt(self) -> str:
        return self.codec.decrypt(self.value)

    def create_cookie(self) -> str:
        return serialize_cookie(self.value, self.cookie_options)


@dataclass(frozen=True)
class RefreshToken:
    """Server-persisted refresh token bound to a user and a fingerprint.

    The raw value has the form ``<nonce>:<fingerprint digest>:<user_id>``.
    """

    value: str
    user_id: str
    fingerprint_hash: str
    cookie_options: CookieOptions = field(repr=False)
    codec: TokenCodec = field(repr=False, compare=False)

    def __repr__(self) -> str:
        return f"RefreshToken(user_id={self.user_id!r})"

    def encrypt(self) -> EncryptedRefreshToken:
        return EncryptedRefreshToken(
            value=self.codec.encrypt(self.value),
            cookie_options=self.cookie_options,
            codec=self.codec,
        )

    def create_cookie(self) -> str:
        # Never put the raw value in a cookie
        return self.encrypt().create_cookie()


@dataclass(frozen=True)
class AccessToken:
    value: str
    user: User
    fingerprint_hash: str
    issued_at: int
    expires_at: int
    cookie_options: CookieOptions = field(repr=False)
    fingerprint_value: Optional[str] = field(default=None, repr=False)

    def create_cookie(self) -> str:
        return serialize_cookie(self.value, self.cookie_options)


class TokenFactory:
    """Mints and reads the three cooperating session tokens."""

    def __init__(self, settings: Settings, codec: TokenCodec, signer: TokenSigner) -> None:
        self.settings = settings
        self.codec = codec
        self.signer = signer
        self._access_cookie = settings.cookie_options(TokenKind.ACCESS)
        self._refresh_cookie = settings.cookie_options(TokenKind.REFRESH)
        self._fingerprint_cookie = settings.cookie_options(TokenKind.FINGERPRINT)

    def hash_fingerprint(self, fingerprint_value: str) -> str:
        return fingerprint_digest(self.settings.secret_key, fingerprint_value)

    def create_fingerprint_token(self) -> FingerprintToken:
        return FingerprintToken(
            value=secrets.token_urlsafe(self.settings.fingerprint_token_bytes),
            cookie_options=self._fingerprint_cookie,
        )

    def create_refresh_token(self, user_id: str, fingerprint_value: str) -> RefreshToken:
        # Fresh nonce per call so concurrent sessions never share a value
        nonce = secrets.token_urlsafe(self.settings.refresh_token_bytes)
        fingerprint_hash = self.hash_fingerprint(fingerprint_value)
        return RefreshToken(
            value=f"{nonce}:{fingerprint_hash}:{user_id}",
            user_id=user_id,
            fingerprint_hash=fingerprint_hash,
            cookie_options=self._refresh_cookie,
            codec=self.codec,
        )

    def create_access_token(self, user: User, fingerprint_value: str) -> AccessToken:
        issued_at = int(time.time())
        expires_at = issued_at + self.settings.access_token_ttl_seconds
        fingerprint_hash = self.hash_fingerprint(fingerprint_value)
        payload: Dict[str, Any] = {
            "sub": user.user_id,
            "fph": fingerprint_hash,
            "user": dict(user.attributes),
            "token_type": "access",
            "jti": str(uuid.uuid4()),
            "iat": issued_at,
            "exp": expires_at,
        }
        return AccessToken(
            value=self.signer.encode(payload),
            user=user,
            fingerprint_hash=fingerprint_hash,
            issued_at=issued_at,
            expires_at=expires_at,
            cookie_options=self._access_cookie,
            fingerprint_value=fingerprint_value,
        )

    def parse_refresh_token(self, raw_value: str) -> RefreshToken:
        parts = raw_value.split(":", 2)
        if len(parts) != 3 or not all(parts):
            raise InvalidTokenError(AuthErrorKind.INVALID_REFRESH_TOKEN)
        _, fingerprint_hash, user_id = parts
        return RefreshToken(
            value=raw_value,
            user_id=user_id,
            fingerprint_hash=fingerprint_hash,
            cookie_options=self._refresh_cookie,
            codec=self.codec,
        )

    def decrypt_refresh_token(self, ciphertext: str) -> RefreshToken:
        return self.parse_refresh_token(self.codec.decrypt(ciphertext))

    def decode_access_token(self, value: str) -> Optional[AccessToken]:
        payload = self.signer.decode(value)
        if not payload or payload.get("token_type") != "access":
            return None
        user_id = payload.get("sub")
        fingerprint_hash = payload.get("fph")
        attributes = payload.get("user")
        if not isinstance(user_id, str) or not isinstance(fingerprint_hash, str):
            return None
        if not isinstance(attributes, dict):
            attributes = {}
        return AccessToken(
            value=value,
            user=User(user_id=user_id, attributes=attributes),
            fingerprint_hash=fingerprint_hash,
            issued_at=int(payload.get("iat", 0)),
            expires_at=int(payload["exp"]),
            cookie_options=self._access_cookie,
        )

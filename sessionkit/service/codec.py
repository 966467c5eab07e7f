from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken

from sessionkit.logging import get_logger
from sessionkit.service.errors import AuthErrorKind, InvalidTokenError

logger = get_logger(__name__)


class TokenCodec(Protocol):
    """Symmetric protection for values that are stored client-side."""

    def encrypt(self, raw_value: str) -> str: ...

    def decrypt(self, ciphertext: str) -> str: ...


def _derive_key(key_material: str, purpose: str) -> bytes:
    # Separate keys per purpose from the one configured secret
    return hashlib.sha256(f"{purpose}:{key_material}".encode()).digest()


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


class FernetTokenCodec:
    """Fernet (AES-128-CBC + HMAC-SHA256) encryption keyed by the process secret.

    When ``ttl_seconds`` is set, ciphertexts older than that are rejected on
    decryption even if the cookie carrying them was kept past its Max-Age.
    """

    def __init__(self, secret_key: str, *, ttl_seconds: Optional[int] = None) -> None:
        self._fernet = Fernet(
            base64.urlsafe_b64encode(_derive_key(secret_key, "refresh-token"))
        )
        self.ttl_seconds = ttl_seconds

    def encrypt(self, raw_value: str) -> str:
        return self._fernet.encrypt(raw_value.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode(), ttl=self.ttl_seconds).decode()
        except (InvalidToken, UnicodeError, ValueError):
            raise InvalidTokenError(AuthErrorKind.INVALID_REFRESH_TOKEN) from None


def fingerprint_digest(secret_key: str, fingerprint_value: str) -> str:
    """Keyed digest that binds tokens to a fingerprint without revealing it."""
    digest = hmac.new(
        _derive_key(secret_key, "fingerprint"),
        fingerprint_value.encode(),
        hashlib.sha256,
    ).digest()
    return _encode_segment(digest)


class TokenSigner:
    """HS256 JWT signing and verification for self-contained access tokens."""

    algorithm = "HS256"

    def __init__(
        self,
        secret_key: str,
        *,
        issuer: str,
        audience: str,
        leeway_seconds: int = 0,
    ) -> None:
        self._key = _derive_key(secret_key, "access-token")
        self.issuer = issuer
        self.audience = audience
        self.leeway_seconds = leeway_seconds

    def _sign(self, signing_input: str) -> str:
        return _encode_segment(
            hmac.new(self._key, signing_input.encode(), hashlib.sha256).digest()
        )

    def encode(self, payload: dict[str, Any]) -> str:
        header = {"alg": self.algorithm, "typ": "JWT"}
        header_enc = _encode_segment(json.dumps(header, separators=(",", ":")).encode())
        payload_enc = _encode_segment(
            json.dumps(
                {"iss": self.issuer, "aud": self.audience, **payload},
                separators=(",", ":"),
                default=str,
            ).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def decode(self, token: str) -> Optional[dict[str, Any]]:
        """Return the verified payload, or ``None`` if the token is not acceptable."""
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        # Pin the algorithm to prevent algorithm confusion
        try:
            header = json.loads(_decode_segment(header_b64))
        except ValueError:
            logger.warning("jwt_header_decode_failed")
            return None
        if not isinstance(header, dict) or header.get("alg") != self.algorithm:
            logger.warning("jwt_invalid_algorithm")
            return None

        expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        if not hmac.compare_digest(expected_sig, sig_b64):
            return None
        try:
            payload = json.loads(_decode_segment(payload_b64))
        except ValueError as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        if not isinstance(payload, dict):
            return None
        if payload.get("iss") != self.issuer:
            return None
        aud = payload.get("aud")
        if isinstance(aud, list):
            valid_aud = self.audience in aud
        else:
            valid_aud = aud == self.audience
        if not valid_aud:
            return None
        try:
            exp_ts = float(payload["exp"])
        except (KeyError, TypeError, ValueError):
            return None
        if exp_ts <= time.time() - self.leeway_seconds:
            return None
        return payload

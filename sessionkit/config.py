from __future__ import annotations

import os
import secrets
import tempfile
from dataclasses import dataclass
from enum import Enum
from http.cookies import CookieError, SimpleCookie
from pathlib import Path
from typing import Any, Literal, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sessionkit.logging import get_logger

logger = get_logger(__name__)

MIN_SECRET_LENGTH = 32


def _is_attribute_safe(value: str) -> bool:
    """True when ``value`` can sit in a Set-Cookie attribute without ending it."""
    return all(c.isprintable() and c.isascii() and c not in ";," for c in value)


class TokenKind(str, Enum):
    """Token types that are delivered to clients as cookies."""

    ACCESS = "access"
    REFRESH = "refresh"
    FINGERPRINT = "fingerprint"


class SameSite(str, Enum):
    LAX = "lax"
    STRICT = "strict"
    NONE = "none"


@dataclass(frozen=True)
class CookieOptions:
    """Attributes applied to one token cookie.

    ``max_age`` is in seconds and always equals the lifetime of the token the
    cookie carries.
    """

    name: str
    max_age: int
    path: str = "/"
    domain: Optional[str] = None
    same_site: SameSite = SameSite.LAX
    secure: bool = True
    http_only: bool = True


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Process-wide token and cookie configuration.

    Instances are frozen; build one at startup and pass it to the services
    that need it.
    """

    secret_key: Optional[str] = env_field(None, "SESSION_SECRET_KEY")
    jwt_issuer: str = env_field("sessionkit", "JWT_ISSUER")
    jwt_audience: str = env_field("sessionkit-clients", "JWT_AUDIENCE")
    access_token_ttl_seconds: int = env_field(
        15 * 60,
        "ACCESS_TOKEN_TTL_SECONDS",
        description="Access token lifetime; also the access cookie Max-Age",
    )
    refresh_token_ttl_seconds: int = env_field(
        7 * 24 * 60 * 60,
        "REFRESH_TOKEN_TTL_SECONDS",
        description="Refresh token lifetime; also the encrypted refresh cookie Max-Age",
    )
    fingerprint_token_ttl_seconds: int = env_field(
        7 * 24 * 60 * 60,
        "FINGERPRINT_TOKEN_TTL_SECONDS",
        description="Fingerprint token lifetime; also the fingerprint cookie Max-Age",
    )
    clock_skew_seconds: int = env_field(30, "CLOCK_SKEW_SECONDS")
    fingerprint_token_bytes: int = env_field(48, "FINGERPRINT_TOKEN_BYTES")
    refresh_token_bytes: int = env_field(32, "REFRESH_TOKEN_BYTES")
    access_token_cookie_name: str = env_field("access_token", "ACCESS_TOKEN_COOKIE_NAME")
    refresh_token_cookie_name: str = env_field(
        "encrypt_refresh_token", "REFRESH_TOKEN_COOKIE_NAME"
    )
    fingerprint_token_cookie_name: str = env_field(
        "fingerprint_token", "FINGERPRINT_TOKEN_COOKIE_NAME"
    )
    cookie_domain: Optional[str] = env_field(None, "COOKIE_DOMAIN")
    cookie_path: str = env_field("/", "COOKIE_PATH")
    cookie_secure: bool = env_field(True, "COOKIE_SECURE")
    cookie_http_only: bool = env_field(True, "COOKIE_HTTP_ONLY")
    cookie_same_site: SameSite = env_field(SameSite.LAX, "COOKIE_SAME_SITE")
    refresh_token_policy: Literal["replace", "append"] = env_field(
        "replace",
        "REFRESH_TOKEN_POLICY",
        description="Memory store policy for refresh tokens of a user",
    )
    shared_fs_root: str = env_field("/srv/sessionkit", "SHARED_FS_ROOT")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Use an ephemeral secret and skip on-disk state",
    )

    model_config = ConfigDict(extra="ignore", frozen=True)

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("cookie_same_site", mode="before")
    @classmethod
    def _normalize_same_site(cls, value: Any) -> SameSite:
        if isinstance(value, str):
            return SameSite(value.strip().lower())
        return SameSite(value)

    @field_validator(
        "access_token_ttl_seconds",
        "refresh_token_ttl_seconds",
        "fingerprint_token_ttl_seconds",
        "fingerprint_token_bytes",
        "refresh_token_bytes",
    )
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("clock_skew_seconds")
    @classmethod
    def _ensure_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator(
        "access_token_cookie_name",
        "refresh_token_cookie_name",
        "fingerprint_token_cookie_name",
    )
    @classmethod
    def _validate_cookie_name(cls, value: str) -> str:
        if not value or ":" in value:
            raise ValueError(f"invalid cookie name: {value!r}")
        # Accept exactly what serialize_cookie can emit
        try:
            SimpleCookie()[value] = ""
        except CookieError:
            raise ValueError(f"invalid cookie name: {value!r}") from None
        return value

    @field_validator("cookie_domain")
    @classmethod
    def _validate_cookie_domain(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if not _is_attribute_safe(value) or " " in value:
            raise ValueError(f"invalid cookie domain: {value!r}")
        return value

    @field_validator("cookie_path")
    @classmethod
    def _validate_cookie_path(cls, value: str) -> str:
        if not value.startswith("/") or not _is_attribute_safe(value):
            raise ValueError(
                "cookie path must start with '/' and contain no ';', ',' or control characters"
            )
        return value

    @model_validator(mode="after")
    def _check_cookie_security(self) -> "Settings":
        if self.cookie_same_site is SameSite.NONE and not self.cookie_secure:
            raise ValueError("SameSite=None cookies must also be Secure")
        names = {
            self.access_token_cookie_name,
            self.refresh_token_cookie_name,
            self.fingerprint_token_cookie_name,
        }
        if len(names) != 3:
            raise ValueError("token cookie names must be distinct")
        return self

    @model_validator(mode="after")
    def _ensure_secret_key(self) -> "Settings":
        if self.secret_key:
            if len(self.secret_key) < MIN_SECRET_LENGTH:
                raise ValueError(
                    f"SESSION_SECRET_KEY must be at least {MIN_SECRET_LENGTH} characters"
                )
            return self
        if self.test_mode:
            generated = secrets.token_urlsafe(64)
        else:
            generated = _load_or_create_secret(Path(self.shared_fs_root))
        # frozen model: bypass __setattr__ for the one derived value
        object.__setattr__(self, "secret_key", generated)
        return self

    def cookie_options(self, kind: TokenKind) -> CookieOptions:
        """Return the cookie attributes for ``kind``."""
        kind = TokenKind(kind)
        if kind is TokenKind.ACCESS:
            name, max_age = self.access_token_cookie_name, self.access_token_ttl_seconds
        elif kind is TokenKind.REFRESH:
            name, max_age = self.refresh_token_cookie_name, self.refresh_token_ttl_seconds
        else:
            name, max_age = (
                self.fingerprint_token_cookie_name,
                self.fingerprint_token_ttl_seconds,
            )
        return CookieOptions(
            name=name,
            max_age=max_age,
            path=self.cookie_path,
            domain=self.cookie_domain,
            same_site=self.cookie_same_site,
            secure=self.cookie_secure,
            http_only=self.cookie_http_only,
        )


def _load_or_create_secret(fs_root: Path) -> str:
    """Read the persisted secret under ``fs_root`` or create one.

    Tokens issued before a restart stay valid only if the secret does.
    """
    secret_path = fs_root / ".session_secret"
    try:
        fs_root.mkdir(parents=True, exist_ok=True)
        os.chmod(fs_root, 0o700)
    except PermissionError:
        # Directory may already exist with different permissions (e.g., in container)
        pass

    if secret_path.exists() and not secret_path.is_symlink():
        try:
            persisted = secret_path.read_text().strip()
        except OSError as exc:
            logger.error("session_secret_read_failed", error=str(exc), path=str(secret_path))
        else:
            if len(persisted) >= MIN_SECRET_LENGTH:
                return persisted

    generated = secrets.token_urlsafe(64)
    tmp_path: Optional[str] = None
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(fs_root), prefix=".session_secret_", suffix=".tmp"
        )
        try:
            os.write(fd, generated.encode())
            os.fchmod(fd, 0o600)
        finally:
            os.close(fd)
        os.rename(tmp_path, str(secret_path))
    except OSError as exc:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        logger.error("session_secret_persist_failed", error=str(exc), path=str(secret_path))
        raise RuntimeError(
            "Unable to persist session secret; set SESSION_SECRET_KEY or make SHARED_FS_ROOT writable"
        ) from exc
    logger.info("session_secret_generated", path=str(secret_path))
    return generated


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None

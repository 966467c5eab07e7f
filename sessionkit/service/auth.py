from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Tuple

from sessionkit.config import Settings
from sessionkit.logging import get_logger
from sessionkit.service.codec import FernetTokenCodec, TokenCodec, TokenSigner
from sessionkit.service.credentials import (
    Argon2Comparer,
    CredentialComparer,
    CredentialVerifier,
)
from sessionkit.service.errors import (
    AuthErrorKind,
    AuthenticationError,
    InvalidIdentifierError,
    InvalidTokenError,
    PersistenceFailureError,
)
from sessionkit.service.tokens import (
    AccessToken,
    EncryptedRefreshToken,
    FingerprintToken,
    RefreshToken,
    TokenFactory,
)
from sessionkit.storage.models import (
    DatabaseRecord,
    User,
    extract_account,
    make_identifier_token,
)

logger = get_logger(__name__)


class AuthStore(Protocol):
    """Storage port: one read for lookup and one write for the refresh token."""

    def get_record_by_identifier_token(
        self, identifier_token: str
    ) -> Optional[DatabaseRecord | Mapping[str, Any]]: ...

    def set_refresh_token(self, value: str, user_id: str) -> None: ...


@dataclass(frozen=True)
class AuthenticationResult:
    user: User
    access_token: AccessToken
    refresh_token: RefreshToken
    encrypted_refresh_token: EncryptedRefreshToken
    fingerprint_token: FingerprintToken
    # access, encrypted refresh, fingerprint
    cookies: Tuple[str, str, str]


class AuthService:
    """Credential verification and session token issuance."""

    def __init__(
        self,
        store: AuthStore,
        settings: Settings,
        *,
        comparer: Optional[CredentialComparer] = None,
        codec: Optional[TokenCodec] = None,
        signer: Optional[TokenSigner] = None,
    ) -> None:
        self.store: AuthStore = store
        self.settings = settings
        self.verifier = CredentialVerifier(comparer or Argon2Comparer())
        self.codec: TokenCodec = codec or FernetTokenCodec(
            settings.secret_key, ttl_seconds=settings.refresh_token_ttl_seconds
        )
        self.signer = signer or TokenSigner(
            settings.secret_key,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            leeway_seconds=settings.clock_skew_seconds,
        )
        self.tokens = TokenFactory(settings, self.codec, self.signer)
        self.logger = logger

    async def authenticate_user(
        self,
        scope: str,
        identifier: str,
        password: Optional[str] = None,
    ) -> AuthenticationResult:
        """Verify the credential for ``scope:identifier`` and open a new session.

        Raises:
            InvalidIdentifierError: no record for the identifier
            InvalidCredentialError: the record has a password hash and the
                supplied password (or its absence) does not match it
            PersistenceFailureError: the refresh token could not be stored
        """
        identifier_token = make_identifier_token(scope, identifier)
        record = self.store.get_record_by_identifier_token(identifier_token)
        if not record:
            self.logger.info(
                "authentication_failed",
                scope=scope,
                reason=AuthErrorKind.INVALID_IDENTIFIER.value,
            )
            raise InvalidIdentifierError()
        account = extract_account(record)
        user = account.user
        if account.hashed_password:
            try:
                await self.verifier.verify(password, account.hashed_password)
            except AuthenticationError as exc:
                self.logger.info(
                    "authentication_failed",
                    scope=scope,
                    user_id=user.user_id,
                    reason=exc.kind.value,
                )
                raise

        fingerprint_token = self.tokens.create_fingerprint_token()
        refresh_token = self.tokens.create_refresh_token(
            user.user_id, fingerprint_token.value
        )
        try:
            self.store.set_refresh_token(refresh_token.value, user.user_id)
        except Exception as exc:
            self.logger.error(
                "refresh_token_persist_failed",
                user_id=user.user_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise PersistenceFailureError() from exc
        encrypted_refresh_token = refresh_token.encrypt()
        access_token = self.tokens.create_access_token(user, fingerprint_token.value)

        cookies = (
            access_token.create_cookie(),
            encrypted_refresh_token.create_cookie(),
            fingerprint_token.create_cookie(),
        )
        self.logger.info("user_authenticated", scope=scope, user_id=user.user_id)
        return AuthenticationResult(
            user=user,
            access_token=access_token,
            refresh_token=refresh_token,
            encrypted_refresh_token=encrypted_refresh_token,
            fingerprint_token=fingerprint_token,
            cookies=cookies,
        )

    def _fingerprint_matches(self, expected_hash: str, fingerprint_value: Optional[str]) -> bool:
        if not fingerprint_value:
            return False
        actual = self.tokens.hash_fingerprint(fingerprint_value)
        return hmac.compare_digest(expected_hash, actual)

    def validate_access_token(
        self, access_token: Optional[str], fingerprint_value: Optional[str]
    ) -> User:
        """Return the user of a signed, unexpired access token.

        The fingerprint presented alongside the token must be the one it was
        issued with.
        """
        decoded = self.tokens.decode_access_token(access_token) if access_token else None
        if decoded is None or not self._fingerprint_matches(
            decoded.fingerprint_hash, fingerprint_value
        ):
            raise InvalidTokenError(AuthErrorKind.INVALID_ACCESS_TOKEN)
        return decoded.user

    def read_refresh_token(
        self, encrypted_refresh_token: Optional[str], fingerprint_value: Optional[str]
    ) -> RefreshToken:
        """Decrypt a refresh token cookie value and check its fingerprint binding."""
        if not encrypted_refresh_token:
            raise InvalidTokenError(AuthErrorKind.INVALID_REFRESH_TOKEN)
        refresh_token = self.tokens.decrypt_refresh_token(encrypted_refresh_token)
        if not self._fingerprint_matches(refresh_token.fingerprint_hash, fingerprint_value):
            raise InvalidTokenError(AuthErrorKind.INVALID_REFRESH_TOKEN)
        return refresh_token

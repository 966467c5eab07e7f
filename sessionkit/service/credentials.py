from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from argon2 import PasswordHasher, Type

from sessionkit.logging import get_logger
from sessionkit.service.errors import InvalidCredentialError

logger = get_logger(__name__)


class CredentialComparer(Protocol):
    """Password comparison primitive.

    ``compare`` returns normally on a match and raises on anything else.
    """

    async def compare(self, candidate: str, hashed: str) -> None: ...


class Argon2Comparer:
    """argon2id comparison, run off the event loop since hashing is slow by design."""

    def __init__(self, hasher: Optional[PasswordHasher] = None) -> None:
        self._hasher = hasher or PasswordHasher(type=Type.ID)

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    async def compare(self, candidate: str, hashed: str) -> None:
        # verify() raises VerifyMismatchError / InvalidHash on failure
        await asyncio.to_thread(self._hasher.verify, hashed, candidate)


class CredentialVerifier:
    def __init__(self, comparer: CredentialComparer) -> None:
        self.comparer = comparer

    async def verify(self, supplied: Optional[str], stored_hash: str) -> None:
        """Check ``supplied`` against ``stored_hash``.

        A missing credential is compared as an empty string. Every failure,
        including errors raised by the comparer, becomes the same
        ``InvalidCredentialError``. Cancellation is not an ``Exception`` and
        propagates unchanged, so it can never read as a match.
        """
        try:
            await self.comparer.compare(supplied or "", stored_hash)
        except Exception:
            logger.debug("credential_comparison_rejected")
            raise InvalidCredentialError() from None

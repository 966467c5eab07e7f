from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


def make_identifier_token(scope: str, identifier: str) -> str:
    """Build the lookup key ``<scope>:<identifier>``."""
    return f"{scope}:{identifier}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class User:
    """Read-only view of an authenticated user.

    ``attributes`` holds the tenant-defined fields; they are carried through
    token issuance as-is and never interpreted here. The view owns a deep
    copy, so nothing done to it reaches the stored record.
    """

    user_id: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "attributes",
            MappingProxyType(copy.deepcopy(dict(self.attributes))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {**copy.deepcopy(dict(self.attributes)), "user_id": self.user_id}


@dataclass
class DatabaseRecord:
    user_id: str
    identifier_token: str
    hashed_password: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class Account:
    user: User
    hashed_password: Optional[str] = None


# Columns owned by the adapter; everything else is a user attribute
_RESERVED_COLUMNS = frozenset({"user_id", "identifier_token", "hashed_password", "created_at"})


def extract_account(record: DatabaseRecord | Mapping[str, Any]) -> Account:
    """Split a stored record into the public user view and its password hash.

    Adapters may return a ``DatabaseRecord`` or a plain row mapping with
    arbitrary extra columns.
    """
    if isinstance(record, DatabaseRecord):
        return Account(
            user=User(user_id=record.user_id, attributes=record.attributes),
            hashed_password=record.hashed_password or None,
        )
    attributes = {k: v for k, v in record.items() if k not in _RESERVED_COLUMNS}
    return Account(
        user=User(user_id=str(record["user_id"]), attributes=attributes),
        hashed_password=record.get("hashed_password") or None,
    )


@dataclass
class StoredRefreshToken:
    value: str
    user_id: str
    created_at: datetime = field(default_factory=_utcnow)

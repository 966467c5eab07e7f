from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from sessionkit.logging import get_logger
from sessionkit.storage.errors import ConstraintViolation
from sessionkit.storage.models import (
    DatabaseRecord,
    StoredRefreshToken,
    make_identifier_token,
)

RefreshTokenPolicy = Literal["replace", "append"]


class MemoryStore:
    """In-memory session adapter with optional JSON persistence.

    With the ``replace`` policy a user holds exactly one active refresh token
    and each successful login supersedes the previous one. ``append`` keeps
    every issued token so several devices can stay signed in at once.
    """

    def __init__(
        self,
        fs_root: Optional[str] = None,
        *,
        refresh_token_policy: RefreshTokenPolicy = "replace",
    ) -> None:
        if refresh_token_policy not in ("replace", "append"):
            raise ValueError(f"unknown refresh token policy: {refresh_token_policy}")
        self.logger = get_logger(__name__)
        self.refresh_token_policy = refresh_token_policy
        self.records: Dict[str, DatabaseRecord] = {}
        self.refresh_tokens: Dict[str, List[StoredRefreshToken]] = {}
        # RLock so helpers can nest inside locked sections
        self._data_lock = threading.RLock()
        self.fs_root = Path(fs_root) if fs_root else None
        if self.fs_root is not None:
            self.fs_root.mkdir(parents=True, exist_ok=True)
            self._load_state()

    def _state_path(self) -> Path:
        assert self.fs_root is not None
        state_dir = self.fs_root / "state"
        state_dir.mkdir(parents=True, exist_ok=True)
        return state_dir / "session_store.json"

    @staticmethod
    def _serialize_datetime(dt: datetime) -> str:
        return dt.isoformat()

    @staticmethod
    def _deserialize_datetime(raw: str) -> datetime:
        return datetime.fromisoformat(raw)

    def create_record(
        self,
        scope: str,
        identifier: str,
        *,
        user_id: Optional[str] = None,
        hashed_password: Optional[str] = None,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> DatabaseRecord:
        identifier_token = make_identifier_token(scope, identifier)
        with self._data_lock:
            if identifier_token in self.records:
                raise ConstraintViolation(
                    "identifier already exists", {"field": "identifier_token"}
                )
            record = DatabaseRecord(
                user_id=user_id or str(uuid.uuid4()),
                identifier_token=identifier_token,
                hashed_password=hashed_password,
                attributes=dict(attributes or {}),
            )
            self.records[identifier_token] = record
            self._persist_state()
            return record

    def get_record_by_identifier_token(self, identifier_token: str) -> Optional[DatabaseRecord]:
        with self._data_lock:
            return self.records.get(identifier_token)

    def _has_user(self, user_id: str) -> bool:
        return any(r.user_id == user_id for r in self.records.values())

    def set_refresh_token(self, value: str, user_id: str) -> None:
        with self._data_lock:
            if not self._has_user(user_id):
                raise ConstraintViolation(
                    "user not found for refresh token", {"user_id": user_id}
                )
            entry = StoredRefreshToken(value=value, user_id=user_id)
            if self.refresh_token_policy == "replace":
                self.refresh_tokens[user_id] = [entry]
            else:
                self.refresh_tokens.setdefault(user_id, []).append(entry)
            self._persist_state()
        self.logger.debug(
            "refresh_token_stored", user_id=user_id, policy=self.refresh_token_policy
        )

    def get_refresh_tokens(self, user_id: str) -> List[str]:
        with self._data_lock:
            return [t.value for t in self.refresh_tokens.get(user_id, [])]

    def _persist_state(self) -> None:
        if self.fs_root is None:
            return
        state = {
            "records": [
                {
                    "user_id": r.user_id,
                    "identifier_token": r.identifier_token,
                    "hashed_password": r.hashed_password,
                    "attributes": r.attributes,
                    "created_at": self._serialize_datetime(r.created_at),
                }
                for r in self.records.values()
            ],
            "refresh_tokens": [
                {
                    "value": t.value,
                    "user_id": t.user_id,
                    "created_at": self._serialize_datetime(t.created_at),
                }
                for tokens in self.refresh_tokens.values()
                for t in tokens
            ],
        }
        path = self._state_path()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(state))
        tmp_path.replace(path)

    def _load_state(self) -> bool:
        path = self._state_path()
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            return False
        self.records = {
            entry["identifier_token"]: DatabaseRecord(
                user_id=entry["user_id"],
                identifier_token=entry["identifier_token"],
                hashed_password=entry.get("hashed_password"),
                attributes=entry.get("attributes") or {},
                created_at=self._deserialize_datetime(entry["created_at"]),
            )
            for entry in data.get("records", [])
        }
        self.refresh_tokens = {}
        for entry in data.get("refresh_tokens", []):
            self.refresh_tokens.setdefault(entry["user_id"], []).append(
                StoredRefreshToken(
                    value=entry["value"],
                    user_id=entry["user_id"],
                    created_at=self._deserialize_datetime(entry["created_at"]),
                )
            )
        return True

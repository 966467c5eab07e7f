from __future__ import annotations

import threading
from typing import Optional

from sessionkit.config import Settings, get_settings, reset_settings_cache
from sessionkit.logging import get_logger
from sessionkit.service.auth import AuthService, AuthStore
from sessionkit.storage.memory import MemoryStore

logger = get_logger(__name__)


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[AuthStore] = None,
    ) -> None:
        self.settings = settings or get_settings()
        if store is None:
            store = MemoryStore(
                fs_root=None if self.settings.test_mode else self.settings.shared_fs_root,
                refresh_token_policy=self.settings.refresh_token_policy,
            )
        self.store = store
        self.auth = AuthService(self.store, self.settings)
        logger.info(
            "runtime_initialized",
            store=type(self.store).__name__,
            test_mode=self.settings.test_mode,
        )


runtime: Optional[Runtime] = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner."""
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> None:
    """Drop the runtime and cached settings so the next call rebuilds both."""
    global runtime
    with _runtime_lock:
        runtime = None
        reset_settings_cache()

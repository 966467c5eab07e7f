import asyncio
import inspect
import os
import sys
import tempfile
from pathlib import Path

# Configure the environment before any sessionkit import reads it
_test_tmp_dir = tempfile.mkdtemp(prefix="sessionkit_test_")
os.environ.setdefault("SHARED_FS_ROOT", _test_tmp_dir)
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault(
    "SESSION_SECRET_KEY", "test-secret-key-for-testing-only-do-not-use-in-production"
)

import pytest  # noqa: E402
from argon2 import PasswordHasher, Type  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from sessionkit.config import Settings  # noqa: E402
from sessionkit.service.runtime import reset_runtime_for_tests  # noqa: E402
from sessionkit.storage.memory import MemoryStore  # noqa: E402


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def settings():
    return Settings(
        secret_key="Test-Secret-Key_for-Automation-Only-987654321!",
        access_token_ttl_seconds=900,
        refresh_token_ttl_seconds=60 * 60 * 24,
        fingerprint_token_ttl_seconds=60 * 60 * 24 * 2,
        test_mode=True,
    )


@pytest.fixture
def fast_hasher():
    """Cheap argon2id parameters; verification reads them back from the hash."""
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1, type=Type.ID)


@pytest.fixture
def memory_store():
    return MemoryStore()


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")

import asyncio
import inspect
import os
import sys
import tempfile
from pathlib import Path

# Configure env before any import initializes settings or the runtime
_test_tmp_dir = tempfile.mkdtemp(prefix="litesso_test_")
os.environ.setdefault("STATE_DIR", _test_tmp_dir)
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("USE_MEMORY_CACHE", "true")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("LOG_JSON", "false")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from litesso.config import Settings  # noqa: E402
from litesso.service.auth import AuthService  # noqa: E402
from litesso.service.runtime import reset_runtime_for_tests  # noqa: E402
from litesso.service.sso import SSOService  # noqa: E402
from litesso.storage.memory import MemoryStore  # noqa: E402
from litesso.storage.memory_cache import MemoryCache  # noqa: E402

TEST_SECRET = "Test-Secret-Key_for-Automation-Only-987654321!"


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def settings():
    return Settings(
        jwt_secret=TEST_SECRET,
        access_token_ttl_seconds=900,
        refresh_token_ttl_seconds=3600,
        session_ttl_seconds=1800,
        login_max_attempts=3,
        login_lockout_seconds=300,
    )


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def memory_cache():
    return MemoryCache()


@pytest.fixture
def auth_service(memory_store, memory_cache, settings):
    return AuthService(memory_store, memory_cache, settings)


@pytest.fixture
def sso_service(memory_store, memory_cache, settings, auth_service):
    return SSOService(memory_store, memory_cache, settings, auth_service)


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

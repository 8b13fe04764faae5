"""Shared pytest fixtures for Hoteria tests."""
import sys
sys.dont_write_bytecode = True

from unittest.mock import MagicMock, patch  # noqa: E402

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset global JWKS cache to avoid cross-test contamination.

    The OIDC JWKS cache is a module-level global that persists between tests;
    a cached JWKS from a previous test would not match the current test's keys.
    """
    import hoteria.api.auth as auth_module

    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0
    yield
    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0


@pytest.fixture
def mock_txn():
    """Factory patching ``<module>.txn`` to yield a MagicMock cursor.

    Usage:
        cur = mock_txn("hoteria.domain.cancellation")
    """
    patchers = []

    def _install(module: str) -> MagicMock:
        cursor = MagicMock()
        patcher = patch(f"{module}.txn")
        txn = patcher.start()
        txn.return_value.__enter__.return_value = cursor
        txn.return_value.__exit__.return_value = False
        patchers.append(patcher)
        return cursor

    yield _install

    for patcher in patchers:
        patcher.stop()

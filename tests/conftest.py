"""
Shared pytest fixtures for repo-cloak tests.
"""

import pytest

from repocloak.crypto import KeyStore


TEST_SECRET = "test-secret-key-for-unit-tests-1234567890"


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.repo-cloak."""
    home = tmp_path / "cloak-home"
    monkeypatch.setenv("REPOCLOAK_HOME", str(home))
    monkeypatch.delenv("REPOCLOAK_ENCRYPT", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    return home


@pytest.fixture
def secret():
    return TEST_SECRET


@pytest.fixture
def key_store():
    return KeyStore.in_memory(TEST_SECRET)

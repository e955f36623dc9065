"""Shared fixtures for the vault test suite."""
import pytest

from sitecheck.vault import VaultConfig, derive_master_key, initialize, open_vault

PASSWORD = "test-password-123"

# Lowest cost VaultConfig accepts; keeps scrypt fast in tests.
TEST_SCRYPT_COST = 2 ** 10


@pytest.fixture
def config(tmp_path):
    """VaultConfig pointing at a temporary vault file."""
    return VaultConfig(path=tmp_path / "vault.db", scrypt_cost=TEST_SCRYPT_COST)


@pytest.fixture
def fresh_store(config):
    """An opened but uninitialized vault."""
    store = open_vault(config)
    yield store
    store.close()


@pytest.fixture
def store(fresh_store):
    """A vault initialized with PASSWORD."""
    initialize(fresh_store, PASSWORD)
    return fresh_store


@pytest.fixture
def master_key(store):
    return derive_master_key(store, PASSWORD)


def snapshot(store):
    """Every row of every table, for before/after comparisons."""
    return {
        table: [tuple(row) for row in store.fetchall(f"SELECT * FROM {table} ORDER BY 1, 2")]
        for table in ("config", "projects", "details", "sessions")
    }

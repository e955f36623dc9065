"""Tests for the SQLite store and its scoped transactions."""
import pytest

from sitecheck.vault import VaultStore, create_project, list_projects, open_vault
from sitecheck.vault.crypto import generate_key


class TestOpenVault:

    def test_creates_schema(self, fresh_store):
        tables = {
            row["name"]
            for row in fresh_store.fetchall("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        assert {"config", "projects", "details", "sessions"} <= tables

    def test_idempotent(self, config):
        with open_vault(config) as first:
            assert isinstance(first, VaultStore)
        with open_vault(config) as second:
            assert second.fetchone("SELECT COUNT(*) AS n FROM projects")["n"] == 0

    def test_foreign_keys_enabled(self, fresh_store):
        assert fresh_store.fetchone("PRAGMA foreign_keys")[0] == 1


class TestSavepoint:

    def test_commits_on_success(self, store, config):
        key = generate_key()
        with store.savepoint("outer"):
            create_project(store, key, "kept")
        with open_vault(config) as other:
            assert list_projects(other) == ["kept"]

    def test_rolls_back_on_error(self, store):
        key = generate_key()
        with pytest.raises(RuntimeError):
            with store.savepoint("outer"):
                create_project(store, key, "gone")
                raise RuntimeError("boom")
        assert list_projects(store) == []

    def test_nested_inner_rollback(self, store):
        key = generate_key()
        with store.savepoint("outer"):
            create_project(store, key, "kept")
            with pytest.raises(RuntimeError):
                with store.savepoint("inner"):
                    create_project(store, key, "gone")
                    raise RuntimeError("boom")
        assert list_projects(store) == ["kept"]

    def test_rejects_bad_name(self, store):
        with pytest.raises(ValueError):
            with store.savepoint("bad name; DROP TABLE projects"):
                pass

"""
Tests for detail (secret) storage.

Tests cover:
- Admin-path round trip and fresh envelopes on every write
- Both wrapped DEK copies opening the same DEK
- Tenant isolation between projects
- Listing and removal
"""
import pytest

from sitecheck.vault import (
    AuthenticationFailure,
    Corrupted,
    DetailNotFound,
    DetailRef,
    ProjectNotFound,
    create_project,
    get_detail,
    get_project_key,
    list_details,
    load_project_details,
    parse_token,
    remove_detail,
    set_detail,
)
from sitecheck.vault.crypto import decrypt_parts, generate_key
from sitecheck.vault.store import envelope


@pytest.fixture
def acme(store, master_key):
    return create_project(store, master_key, "acme")


class TestSetGetDetail:

    @pytest.mark.parametrize("value", ["sk-123", "", "pässwörd ✓", "x" * 4096])
    def test_roundtrip_both_paths(self, store, master_key, acme, value):
        set_detail(store, master_key, "acme", "secret", value)
        assert get_detail(store, master_key, "acme", "secret") == value
        loaded = load_project_details(store, parse_token(acme), "acme", {"s": "secret"})
        assert loaded == {"s": value}

    def test_update_overwrites(self, store, master_key, acme):
        set_detail(store, master_key, "acme", "user", "alice")
        set_detail(store, master_key, "acme", "user", "bob")
        assert get_detail(store, master_key, "acme", "user") == "bob"
        assert len(list_details(store, "acme")) == 1

    def test_update_uses_fresh_dek(self, store, master_key, acme):
        set_detail(store, master_key, "acme", "user", "alice")
        first = get_master_dek(store, master_key, "acme", "user")
        set_detail(store, master_key, "acme", "user", "alice")
        second = get_master_dek(store, master_key, "acme", "user")
        assert first != second

    def test_wrapped_copies_open_same_dek(self, store, master_key, acme):
        set_detail(store, master_key, "acme", "user", "alice")
        row = store.fetchone("SELECT * FROM details WHERE project = 'acme' AND key = 'user'")
        project_key = get_project_key(store, master_key, "acme")
        via_master = decrypt_parts(master_key, envelope(row, "master_dek_"))
        via_project = decrypt_parts(project_key, envelope(row, "project_dek_"))
        assert via_master == via_project

    def test_set_unknown_project(self, store, master_key):
        with pytest.raises(ProjectNotFound):
            set_detail(store, master_key, "nope", "k", "v")

    def test_get_missing(self, store, master_key, acme):
        with pytest.raises(DetailNotFound, match="acme/missing"):
            get_detail(store, master_key, "acme", "missing")

    def test_get_wrong_master_key(self, store, master_key, acme):
        set_detail(store, master_key, "acme", "user", "alice")
        with pytest.raises(AuthenticationFailure):
            get_detail(store, generate_key(), "acme", "user")

    def test_tampered_value(self, store, master_key, acme):
        set_detail(store, master_key, "acme", "user", "alice")
        store.execute("UPDATE details SET value_auth_tag = zeroblob(16)")
        with pytest.raises(AuthenticationFailure):
            get_detail(store, master_key, "acme", "user")

    def test_truncated_iv_is_corrupted(self, store, master_key, acme):
        set_detail(store, master_key, "acme", "user", "alice")
        store.execute("UPDATE details SET value_iv = zeroblob(4)")
        with pytest.raises(Corrupted):
            get_detail(store, master_key, "acme", "user")


def get_master_dek(store, master_key, project, key):
    row = store.fetchone(
        "SELECT master_dek_iv, master_dek_auth_tag, master_dek_ciphertext "
        "FROM details WHERE project = ? AND key = ?",
        (project, key),
    )
    return bytes(decrypt_parts(master_key, envelope(row, "master_dek_")))


class TestIsolation:

    def test_other_project_token_fails(self, store, master_key, acme):
        other = create_project(store, master_key, "other")
        set_detail(store, master_key, "acme", "api_key", "sk-123")
        with pytest.raises(AuthenticationFailure):
            load_project_details(store, parse_token(other), "acme", {"k": "api_key"})

    def test_same_key_name_in_two_projects(self, store, master_key, acme):
        other = create_project(store, master_key, "other")
        set_detail(store, master_key, "acme", "user", "alice")
        set_detail(store, master_key, "other", "user", "bob")
        assert load_project_details(store, parse_token(acme), "acme", {"u": "user"}) == {"u": "alice"}
        assert load_project_details(store, parse_token(other), "other", {"u": "user"}) == {"u": "bob"}


class TestListRemove:

    def test_list_all_sorted(self, store, master_key, acme):
        create_project(store, master_key, "beta")
        set_detail(store, master_key, "beta", "b", "1")
        set_detail(store, master_key, "acme", "z", "2")
        set_detail(store, master_key, "acme", "a", "3")
        assert list_details(store) == [
            DetailRef("acme", "a"),
            DetailRef("acme", "z"),
            DetailRef("beta", "b"),
        ]

    def test_list_by_project(self, store, master_key, acme):
        create_project(store, master_key, "beta")
        set_detail(store, master_key, "beta", "b", "1")
        set_detail(store, master_key, "acme", "a", "2")
        assert [d.key for d in list_details(store, "acme")] == ["a"]

    def test_list_empty(self, store):
        assert list_details(store) == []

    def test_remove(self, store, master_key, acme):
        set_detail(store, master_key, "acme", "user", "alice")
        remove_detail(store, "acme", "user")
        assert list_details(store, "acme") == []
        with pytest.raises(DetailNotFound):
            get_detail(store, master_key, "acme", "user")

    def test_remove_missing(self, store, acme):
        with pytest.raises(DetailNotFound):
            remove_detail(store, "acme", "missing")

"""Project key management.

Each project owns a random 32-byte key, stored wrapped under the master key.
The raw key is what a project token exports.
"""
import re
import sqlite3
import logging

from .crypto import aead_encrypt, decrypt_parts, export_token, generate_key, wipe
from .exceptions import (
    AuthenticationFailure,
    InvalidName,
    ProjectExists,
    ProjectNotFound,
)
from .store import VaultStore, envelope

logger = logging.getLogger("sitecheck.vault")

PROJECT_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

_SELECT_PROJECT = """
SELECT name, key_iv, key_auth_tag, key_ciphertext FROM projects WHERE name = ?
"""

_INSERT_PROJECT = """
INSERT INTO projects (name, key_iv, key_auth_tag, key_ciphertext)
VALUES (?, ?, ?, ?)
"""


def validate_project_name(name: str) -> None:
    if not PROJECT_NAME_PATTERN.fullmatch(name):
        raise InvalidName(
            f"Invalid project name {name!r}: use only letters, digits, "
            f"hyphens, and underscores"
        )


def project_exists(store: VaultStore, name: str) -> bool:
    return store.fetchone("SELECT 1 FROM projects WHERE name = ?", (name,)) is not None


def create_project(store: VaultStore, master_key: bytearray, name: str) -> str:
    """Create a project with a fresh key.

    Args:
        store: Open vault.
        master_key: Verified master key.
        name: New project name.

    Returns:
        The exportable project token.

    Raises:
        InvalidName: Name has disallowed characters.
        ProjectExists: A project with this name already exists.
    """
    validate_project_name(name)
    if project_exists(store, name):
        raise ProjectExists(f"Project already exists: {name!r}")
    project_key = generate_key()
    try:
        wrapped = aead_encrypt(master_key, project_key)
        try:
            store.execute(
                _INSERT_PROJECT,
                (name, wrapped.iv, wrapped.auth_tag, wrapped.ciphertext),
            )
        except sqlite3.IntegrityError as err:
            raise ProjectExists(f"Project already exists: {name!r}") from err
        token = export_token(project_key)
    finally:
        wipe(project_key)
    logger.info("Created project %s", name)
    return token


def get_project_key(store: VaultStore, master_key: bytearray, name: str) -> bytearray:
    """Unwrap and return a project's raw key.

    Raises:
        ProjectNotFound: Unknown project.
        AuthenticationFailure: Wrong master key or corrupted project row.
    """
    row = store.fetchone(_SELECT_PROJECT, (name,))
    if row is None:
        raise ProjectNotFound(f"Project not found: {name!r}")
    try:
        return decrypt_parts(master_key, envelope(row, "key_"))
    except AuthenticationFailure as err:
        raise AuthenticationFailure(
            f"Failed to decrypt project key for {name!r}: wrong master password"
        ) from err


def export_project_token(store: VaultStore, master_key: bytearray, name: str) -> str:
    """Return the current token of an existing project."""
    project_key = get_project_key(store, master_key, name)
    try:
        return export_token(project_key)
    finally:
        wipe(project_key)


def list_projects(store: VaultStore) -> list[str]:
    return [
        row["name"]
        for row in store.fetchall("SELECT name FROM projects ORDER BY name")
    ]


def remove_project(store: VaultStore, name: str) -> None:
    """Delete a project and, by cascade, all of its details."""
    cursor = store.execute("DELETE FROM projects WHERE name = ?", (name,))
    if cursor.rowcount == 0:
        raise ProjectNotFound(f"Project not found: {name!r}")
    logger.info("Removed project %s", name)


def rename_project(store: VaultStore, old_name: str, new_name: str) -> None:
    """Rename a project, keeping its key and therefore its token.

    The name is the foreign key of every detail, so the row is copied under
    the new name, details are repointed, and the old row is deleted, all in
    one savepoint.

    Raises:
        InvalidName: ``new_name`` has disallowed characters.
        ProjectNotFound: ``old_name`` does not exist.
        ProjectExists: ``new_name`` is already taken.
    """
    validate_project_name(new_name)
    row = store.fetchone(_SELECT_PROJECT, (old_name,))
    if row is None:
        raise ProjectNotFound(f"Project not found: {old_name!r}")
    if project_exists(store, new_name):
        raise ProjectExists(f"Project already exists: {new_name!r}")

    with store.savepoint("rename_project"):
        store.execute(
            _INSERT_PROJECT,
            (new_name, row["key_iv"], row["key_auth_tag"], row["key_ciphertext"]),
        )
        moved = store.execute(
            "UPDATE details SET project = ? WHERE project = ?",
            (new_name, old_name),
        ).rowcount
        store.execute("DELETE FROM projects WHERE name = ?", (old_name,))
    logger.info(
        "Renamed project %s to %s (%d detail(s) moved)", old_name, new_name, moved,
    )

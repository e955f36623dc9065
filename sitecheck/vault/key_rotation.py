"""
Vault Key Rotation — Rewrapping of envelope keys when a wrapping key changes.

Two rotations exist:
- Project rotation: a new project key replaces the old one. Every
  project-wrapped DEK under that project is unwrapped with the old key and
  rewrapped with the new one.
- Master rewrap (password change): every project key and every
  master-wrapped DEK is moved from the old master key to the new one.

Value ciphertext is never re-encrypted; only the wrappers move. Each
rotation runs in one savepoint, so a single bad row aborts the whole
operation and leaves every row as it was.

Security Note:
    Unwrapped keys exist in memory only while their row is rewrapped.
    Never log key material or ciphertext values.
"""
import logging

from .crypto import aead_encrypt, decrypt_parts, export_token, generate_key, wipe
from .exceptions import AuthenticationFailure
from .projects import get_project_key
from .store import VaultStore, envelope

logger = logging.getLogger("sitecheck.vault")

# SQL statements
_SELECT_PROJECTS = """
SELECT name, key_iv, key_auth_tag, key_ciphertext
FROM projects
ORDER BY name
"""

_UPDATE_PROJECT_KEY = """
UPDATE projects
SET key_iv = ?, key_auth_tag = ?, key_ciphertext = ?
WHERE name = ?
"""

_SELECT_MASTER_DEKS = """
SELECT project, key, master_dek_iv, master_dek_auth_tag, master_dek_ciphertext
FROM details
ORDER BY project, key
"""

_UPDATE_MASTER_DEK = """
UPDATE details
SET master_dek_iv = ?, master_dek_auth_tag = ?, master_dek_ciphertext = ?
WHERE project = ? AND key = ?
"""

_SELECT_PROJECT_DEKS = """
SELECT key, project_dek_iv, project_dek_auth_tag, project_dek_ciphertext
FROM details
WHERE project = ?
ORDER BY key
"""

_UPDATE_PROJECT_DEK = """
UPDATE details
SET project_dek_iv = ?, project_dek_auth_tag = ?, project_dek_ciphertext = ?
WHERE project = ? AND key = ?
"""


def _rewrap(old_key: bytearray, new_key: bytearray, row, prefix: str):
    inner = decrypt_parts(old_key, envelope(row, prefix))
    try:
        return aead_encrypt(new_key, inner)
    finally:
        wipe(inner)


def rewrap_master_key(
    store: VaultStore,
    old_master_key: bytearray,
    new_master_key: bytearray,
) -> dict:
    """Move every master-wrapped key from ``old_master_key`` to ``new_master_key``.

    Must be called inside a savepoint owned by the caller; it does not open
    its own so the config rewrite and session purge share the transaction.

    Returns:
        Stats dict with keys: projects, details.

    Raises:
        AuthenticationFailure: If any row does not unwrap under the old key.
    """
    stats = {"projects": 0, "details": 0}

    for row in store.fetchall(_SELECT_PROJECTS):
        name = row["name"]
        try:
            wrapped = _rewrap(old_master_key, new_master_key, row, "key_")
        except AuthenticationFailure as err:
            logger.error("Cannot unwrap key of project %s", name)
            raise AuthenticationFailure(
                f"Failed to unwrap project key for {name!r}"
            ) from err
        store.execute(
            _UPDATE_PROJECT_KEY,
            (wrapped.iv, wrapped.auth_tag, wrapped.ciphertext, name),
        )
        stats["projects"] += 1

    for row in store.fetchall(_SELECT_MASTER_DEKS):
        project, key = row["project"], row["key"]
        try:
            wrapped = _rewrap(old_master_key, new_master_key, row, "master_dek_")
        except AuthenticationFailure as err:
            logger.error("Cannot unwrap master DEK of %s/%s", project, key)
            raise AuthenticationFailure(
                f"Failed to unwrap detail {project}/{key}"
            ) from err
        store.execute(
            _UPDATE_MASTER_DEK,
            (wrapped.iv, wrapped.auth_tag, wrapped.ciphertext, project, key),
        )
        stats["details"] += 1

    return stats


def rotate_project(store: VaultStore, master_key: bytearray, name: str) -> str:
    """Replace a project's key and rewrap its project-wrapped DEKs.

    Holders of the previous project token lose access; the master-wrapped
    DEKs and value ciphertext are untouched, so admin access is unaffected.

    Args:
        store: Open vault.
        master_key: Verified master key.
        name: Project to rotate.

    Returns:
        The new project token.

    Raises:
        ProjectNotFound: Unknown project.
        AuthenticationFailure: Wrong master key, or a detail that does not
            unwrap under the current project key. Nothing is changed.
    """
    old_project_key = get_project_key(store, master_key, name)
    new_project_key = generate_key()
    rotated = 0
    try:
        with store.savepoint("rotate_project"):
            wrapped = aead_encrypt(master_key, new_project_key)
            store.execute(
                _UPDATE_PROJECT_KEY,
                (wrapped.iv, wrapped.auth_tag, wrapped.ciphertext, name),
            )
            for row in store.fetchall(_SELECT_PROJECT_DEKS, (name,)):
                key = row["key"]
                try:
                    rewrapped = _rewrap(
                        old_project_key, new_project_key, row, "project_dek_",
                    )
                except AuthenticationFailure as err:
                    logger.error("Cannot unwrap project DEK of %s/%s", name, key)
                    raise AuthenticationFailure(
                        f"Failed to unwrap detail {name}/{key}"
                    ) from err
                store.execute(
                    _UPDATE_PROJECT_DEK,
                    (rewrapped.iv, rewrapped.auth_tag, rewrapped.ciphertext, name, key),
                )
                rotated += 1
        token = export_token(new_project_key)
    finally:
        wipe(old_project_key)
        wipe(new_project_key)

    logger.info("Rotated key of project %s (%d detail(s) rewrapped)", name, rotated)
    return token

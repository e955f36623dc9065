"""
Detail storage — named secrets under a project, one envelope per secret.

Each write generates a brand-new DEK, encrypts the value with it, and wraps
the DEK twice: once under the master key (admin path) and once under the
project key (automation path). Both wrapped copies open the same DEK.
"""
import logging
from typing import NamedTuple, Optional

from .crypto import aead_encrypt, decrypt_parts, generate_key, wipe
from .exceptions import AuthenticationFailure, DetailNotFound
from .projects import get_project_key
from .store import VaultStore, envelope

logger = logging.getLogger("sitecheck.vault")

_UPSERT_DETAIL = """
INSERT INTO details (
    key, project,
    value_iv, value_auth_tag, value_ciphertext,
    master_dek_iv, master_dek_auth_tag, master_dek_ciphertext,
    project_dek_iv, project_dek_auth_tag, project_dek_ciphertext
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (project, key) DO UPDATE SET
    value_iv = excluded.value_iv,
    value_auth_tag = excluded.value_auth_tag,
    value_ciphertext = excluded.value_ciphertext,
    master_dek_iv = excluded.master_dek_iv,
    master_dek_auth_tag = excluded.master_dek_auth_tag,
    master_dek_ciphertext = excluded.master_dek_ciphertext,
    project_dek_iv = excluded.project_dek_iv,
    project_dek_auth_tag = excluded.project_dek_auth_tag,
    project_dek_ciphertext = excluded.project_dek_ciphertext
"""

_SELECT_MASTER_PATH = """
SELECT value_iv, value_auth_tag, value_ciphertext,
       master_dek_iv, master_dek_auth_tag, master_dek_ciphertext
FROM details
WHERE project = ? AND key = ?
"""


class DetailRef(NamedTuple):
    project: str
    key: str


def set_detail(
    store: VaultStore,
    master_key: bytearray,
    project: str,
    key: str,
    value: str,
) -> None:
    """Encrypt and store a secret, replacing any previous value.

    Raises:
        ProjectNotFound: Unknown project.
        AuthenticationFailure: Wrong master key.
    """
    project_key = get_project_key(store, master_key, project)
    dek = generate_key()
    try:
        sealed = aead_encrypt(dek, value.encode("utf-8"))
        master_wrapped = aead_encrypt(master_key, dek)
        project_wrapped = aead_encrypt(project_key, dek)
    finally:
        wipe(dek)
        wipe(project_key)
    store.execute(
        _UPSERT_DETAIL,
        (
            key, project,
            *sealed,
            *master_wrapped,
            *project_wrapped,
        ),
    )
    logger.debug("Set detail %s/%s", project, key)


def get_detail(store: VaultStore, master_key: bytearray, project: str, key: str) -> str:
    """Decrypt a secret through its master-wrapped DEK.

    Raises:
        DetailNotFound: No such (project, key).
        AuthenticationFailure: Wrong master key or tampered row.
    """
    row = store.fetchone(_SELECT_MASTER_PATH, (project, key))
    if row is None:
        raise DetailNotFound(f"Detail not found: {project}/{key}")
    try:
        dek = decrypt_parts(master_key, envelope(row, "master_dek_"))
    except AuthenticationFailure as err:
        raise AuthenticationFailure(
            f"Failed to decrypt detail {project}/{key}: wrong master password"
        ) from err
    try:
        return decrypt_parts(dek, envelope(row, "value_")).decode("utf-8")
    finally:
        wipe(dek)


def list_details(store: VaultStore, project: Optional[str] = None) -> list[DetailRef]:
    """List (project, key) pairs, optionally for one project. No decryption."""
    if project is not None:
        rows = store.fetchall(
            "SELECT project, key FROM details WHERE project = ? ORDER BY key",
            (project,),
        )
    else:
        rows = store.fetchall(
            "SELECT project, key FROM details ORDER BY project, key"
        )
    return [DetailRef(row["project"], row["key"]) for row in rows]


def remove_detail(store: VaultStore, project: str, key: str) -> None:
    cursor = store.execute(
        "DELETE FROM details WHERE project = ? AND key = ?", (project, key),
    )
    if cursor.rowcount == 0:
        raise DetailNotFound(f"Detail not found: {project}/{key}")
    logger.debug("Removed detail %s/%s", project, key)

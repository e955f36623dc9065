"""
Runtime secret loading for automation runs.

Automation holds a project token, never the master password. Secrets are
opened through the project-wrapped DEK only, and a load is all-or-nothing:
any missing or undecryptable detail aborts it.
"""
import logging
from collections.abc import Mapping
from typing import Optional

from .config import VaultConfig, load_project_token
from .crypto import Buffer, decrypt_parts, parse_token, wipe
from .exceptions import AuthenticationFailure, DetailNotFound
from .store import VaultStore, envelope, open_vault_read_only

logger = logging.getLogger("sitecheck.vault")

_SELECT_PROJECT_PATH = """
SELECT project_dek_iv, project_dek_auth_tag, project_dek_ciphertext,
       value_iv, value_auth_tag, value_ciphertext
FROM details
WHERE project = ? AND key = ?
"""


def load_project_details(
    store: VaultStore,
    project_key: Buffer,
    project: str,
    needs: Mapping[str, str],
) -> dict[str, str]:
    """Decrypt the secrets an automation run needs.

    Args:
        store: Open vault (read-only is enough).
        project_key: Raw 32-byte key parsed from the project token.
        project: Project the details belong to.
        needs: Mapping of local name to stored detail key.

    Returns:
        Mapping of local name to plaintext value.

    Raises:
        DetailNotFound: A needed detail does not exist.
        AuthenticationFailure: The token does not belong to this project,
            or a row was tampered with.
    """
    context: dict[str, str] = {}
    for local_name, detail_key in needs.items():
        row = store.fetchone(_SELECT_PROJECT_PATH, (project, detail_key))
        if row is None:
            raise DetailNotFound(
                f"Detail {detail_key!r} not found in project {project!r}"
            )
        try:
            dek = decrypt_parts(project_key, envelope(row, "project_dek_"))
        except AuthenticationFailure as err:
            raise AuthenticationFailure(
                f"Failed to decrypt detail {detail_key!r}: invalid project token"
            ) from err
        try:
            value = decrypt_parts(dek, envelope(row, "value_"))
        except AuthenticationFailure as err:
            raise AuthenticationFailure(
                f"Failed to decrypt value for detail {detail_key!r}: corrupted data"
            ) from err
        finally:
            wipe(dek)
        context[local_name] = value.decode("utf-8")
    return context


def load_secrets(
    config: VaultConfig,
    project: str,
    needs: Mapping[str, str],
    token: Optional[str] = None,
) -> dict[str, str]:
    """Open the vault read-only and load ``needs`` for ``project``.

    The token is taken from ``token`` when given, otherwise from
    ``VAULT_TOKEN_<PROJECT>`` / ``VAULT_TOKEN``.
    """
    project_key = parse_token(token) if token is not None else load_project_token(project)
    with open_vault_read_only(config) as store:
        context = load_project_details(store, project_key, project, needs)
    logger.info(
        "Loaded context from vault: project=%s keys=%s",
        project, ", ".join(context) or "(none)",
    )
    return context

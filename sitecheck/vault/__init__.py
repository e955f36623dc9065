"""Secrets Vault — Password-protected credential store for automation.

One operator password derives the master key. Every project has its own
key, exported as a project token, so automation runs can read only their
own project's secrets without ever holding the password.

Security Note (Threat Model):
    Keys and plaintext exist in process memory during an operation.
    Loss of the password with no live admin session is unrecoverable.
    Hardware key storage and multi-writer access are out of scope.
"""

from .config import VaultConfig, load_project_token, token_env_key
from .core import (
    change_password,
    derive_master_key,
    initialize,
    is_initialized,
    read_scrypt_cost,
)
from .crypto import export_token, parse_token
from .details import DetailRef, get_detail, list_details, remove_detail, set_detail
from .exceptions import (
    AlreadyExists,
    AlreadyInitialized,
    AuthenticationFailure,
    Corrupted,
    DetailNotFound,
    Expired,
    InvalidName,
    InvalidToken,
    NotFound,
    NotInitialized,
    ProjectExists,
    ProjectNotFound,
    SessionNotFound,
    VaultError,
)
from .key_rotation import rotate_project
from .legacy import import_legacy_vault, read_legacy_vault
from .projects import (
    create_project,
    export_project_token,
    get_project_key,
    list_projects,
    remove_project,
    rename_project,
    validate_project_name,
)
from .runtime import load_project_details, load_secrets
from .sessions import (
    create_session,
    delete_session,
    get_master_key_from_session,
    get_session_expiry,
    prune_expired_sessions,
)
from .store import VaultStore, open_vault, open_vault_read_only

__all__ = [
    "VaultConfig",
    "VaultStore",
    "open_vault",
    "open_vault_read_only",
    "load_project_token",
    "token_env_key",
    "initialize",
    "is_initialized",
    "read_scrypt_cost",
    "derive_master_key",
    "change_password",
    "export_token",
    "parse_token",
    "create_project",
    "export_project_token",
    "get_project_key",
    "list_projects",
    "remove_project",
    "rename_project",
    "rotate_project",
    "validate_project_name",
    "DetailRef",
    "set_detail",
    "get_detail",
    "list_details",
    "remove_detail",
    "load_project_details",
    "load_secrets",
    "create_session",
    "get_master_key_from_session",
    "get_session_expiry",
    "delete_session",
    "prune_expired_sessions",
    "import_legacy_vault",
    "read_legacy_vault",
    "VaultError",
    "NotInitialized",
    "AuthenticationFailure",
    "NotFound",
    "ProjectNotFound",
    "DetailNotFound",
    "SessionNotFound",
    "AlreadyExists",
    "ProjectExists",
    "AlreadyInitialized",
    "Corrupted",
    "Expired",
    "InvalidToken",
    "InvalidName",
]

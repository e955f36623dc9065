"""
Vault Configuration — Store location, KDF cost and project token loading.

Reads settings from environment variables:
    VAULT_PATH = <path to the SQLite vault file>
    VAULT_SCRYPT_COST = <scrypt N, power of two>
    VAULT_SESSION_MINUTES = <default admin session lifetime>

Project tokens for automation runs are read from:
    VAULT_TOKEN_<PROJECT> = <base64-encoded 32-byte project key>
    VAULT_TOKEN = <fallback token when no project-specific one is set>

Security Note:
    Never log token values. Only log variable names and project names.
"""
import os
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .crypto import SCRYPT_COST, parse_token
from .exceptions import InvalidToken

logger = logging.getLogger("sitecheck.vault")

DEFAULT_VAULT_PATH = "vault.db"
DEFAULT_SESSION_MINUTES = 30
MIN_SCRYPT_COST = 2 ** 10


def token_env_key(project: str) -> str:
    """Return the environment variable holding a project's token.

    ``my-shop`` becomes ``VAULT_TOKEN_MY_SHOP``.
    """
    return "VAULT_TOKEN_" + project.upper().replace("-", "_")


def load_project_token(project: str) -> bytes:
    """Load and decode the project token for ``project`` from the environment.

    Looks up ``VAULT_TOKEN_<PROJECT>`` first, then ``VAULT_TOKEN``.

    Args:
        project: Project name.

    Returns:
        Raw 32-byte project key.

    Raises:
        InvalidToken: If no token variable is set or the value does not
            decode to exactly 32 bytes.
    """
    name = token_env_key(project)
    raw = os.environ.get(name)
    if raw is None:
        name = "VAULT_TOKEN"
        raw = os.environ.get(name)
    if not raw:
        raise InvalidToken(
            f"No project token in environment. "
            f"Set {token_env_key(project)}=<token exported from the vault>"
        )
    logger.debug("Loaded project token for %s from %s", project, name)
    return parse_token(raw)


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    path: Path = Field(default=Path(DEFAULT_VAULT_PATH))
    scrypt_cost: int = Field(default=SCRYPT_COST, ge=MIN_SCRYPT_COST)
    session_minutes: int = Field(default=DEFAULT_SESSION_MINUTES, ge=1)

    @field_validator("scrypt_cost")
    @classmethod
    def validate_cost(cls, v: int) -> int:
        """scrypt requires N to be a power of two."""
        if v & (v - 1):
            raise ValueError(f"scrypt_cost must be a power of two, got {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        values = {
            "path": os.environ.get("VAULT_PATH", DEFAULT_VAULT_PATH),
        }
        if "VAULT_SCRYPT_COST" in os.environ:
            values["scrypt_cost"] = os.environ["VAULT_SCRYPT_COST"]
        if "VAULT_SESSION_MINUTES" in os.environ:
            values["session_minutes"] = os.environ["VAULT_SESSION_MINUTES"]
        return cls(**values)

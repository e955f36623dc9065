"""
Vault Store — SQLite schema, connection handling and scoped transactions.

The connection runs in autocommit mode; every multi-row mutation wraps its
statements in ``VaultStore.savepoint()``, which rolls back every row it
touched if anything inside raises. Savepoints nest.
"""
import re
import sqlite3
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from .config import VaultConfig
from .crypto import EncryptedParts
from .exceptions import Corrupted

logger = logging.getLogger("sitecheck.vault")

SCHEMA = """
CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    iv BLOB,
    auth_tag BLOB,
    ciphertext BLOB NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
    name TEXT PRIMARY KEY,
    key_iv BLOB NOT NULL,
    key_auth_tag BLOB NOT NULL,
    key_ciphertext BLOB NOT NULL
);

CREATE TABLE IF NOT EXISTS details (
    key TEXT NOT NULL,
    project TEXT NOT NULL REFERENCES projects(name) ON DELETE CASCADE,
    value_iv BLOB NOT NULL,
    value_auth_tag BLOB NOT NULL,
    value_ciphertext BLOB NOT NULL,
    master_dek_iv BLOB NOT NULL,
    master_dek_auth_tag BLOB NOT NULL,
    master_dek_ciphertext BLOB NOT NULL,
    project_dek_iv BLOB NOT NULL,
    project_dek_auth_tag BLOB NOT NULL,
    project_dek_ciphertext BLOB NOT NULL,
    PRIMARY KEY (project, key)
);

CREATE TABLE IF NOT EXISTS sessions (
    id BLOB PRIMARY KEY,
    iv BLOB NOT NULL,
    auth_tag BLOB NOT NULL,
    ciphertext BLOB NOT NULL,
    expires_at INTEGER NOT NULL
);
"""

_SAVEPOINT_NAME = re.compile(r"\w+")


class VaultStore:
    """Handle on an open vault file.

    Carries the connection and the config it was opened with. Vault
    operations take a store as their first argument; nothing about the
    store is cached at module level.
    """

    def __init__(self, conn: sqlite3.Connection, config: VaultConfig, read_only: bool = False):
        self.conn = conn
        self.config = config
        self.read_only = read_only

    def __enter__(self) -> "VaultStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchall()

    @contextmanager
    def savepoint(self, name: str) -> Iterator["VaultStore"]:
        """Run a block inside a named savepoint.

        On normal exit the savepoint is released (committed if outermost).
        On any exception every change made inside is rolled back and the
        exception propagates unchanged.

        Args:
            name: Savepoint identifier; word characters only.
        """
        if not _SAVEPOINT_NAME.fullmatch(name):
            raise ValueError(f"Invalid savepoint name: {name!r}")
        self.conn.execute(f"SAVEPOINT {name}")
        try:
            yield self
        except BaseException:
            self.conn.execute(f"ROLLBACK TO {name}")
            self.conn.execute(f"RELEASE {name}")
            logger.debug("Rolled back savepoint %s", name)
            raise
        else:
            self.conn.execute(f"RELEASE {name}")


def _connect(target: str, uri: bool = False) -> sqlite3.Connection:
    conn = sqlite3.connect(target, isolation_level=None, uri=uri)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def open_vault(config: Optional[VaultConfig] = None) -> VaultStore:
    """Open (creating if needed) the vault file and ensure the schema exists.

    Safe to call on an existing vault; the schema statements are idempotent.

    Args:
        config: Vault settings. Defaults to ``VaultConfig.from_env()``.

    Returns:
        An open VaultStore. Close it, or use it as a context manager.
    """
    config = config or VaultConfig.from_env()
    conn = _connect(str(config.path))
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(SCHEMA)
    except sqlite3.Error:
        conn.close()
        raise
    logger.debug("Opened vault at %s", config.path)
    return VaultStore(conn, config)


def open_vault_read_only(config: Optional[VaultConfig] = None) -> VaultStore:
    """Open an existing vault file without write access.

    Used by automation runs, which only ever read details. The schema is
    not created; a missing file is an error.
    """
    config = config or VaultConfig.from_env()
    if not config.path.exists():
        raise FileNotFoundError(f"Vault file not found: {config.path}")
    conn = _connect(f"{config.path.resolve().as_uri()}?mode=ro", uri=True)
    logger.debug("Opened vault read-only at %s", config.path)
    return VaultStore(conn, config, read_only=True)


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

def require_blob(row: Any, field: str) -> bytes:
    """Return a BLOB column, rejecting NULL or mistyped values."""
    value = row[field]
    if not isinstance(value, (bytes, bytearray)):
        raise Corrupted(f"Expected BLOB for field {field!r}")
    return bytes(value)


def envelope(row: Any, prefix: str) -> EncryptedParts:
    """Read the ``<prefix>iv``, ``<prefix>auth_tag``, ``<prefix>ciphertext`` triple."""
    return EncryptedParts(
        iv=require_blob(row, f"{prefix}iv"),
        auth_tag=require_blob(row, f"{prefix}auth_tag"),
        ciphertext=require_blob(row, f"{prefix}ciphertext"),
    )

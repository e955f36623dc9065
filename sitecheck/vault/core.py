"""
Vault Core — Initialization, password verification and password change.

The config table holds three records:
- ``salt``: raw scrypt salt, stored unencrypted in the ciphertext column
- ``scrypt_cost``: scrypt N the master key was derived with, big-endian
- ``password_check``: AEAD(master_key, PASSWORD_CHECK_MAGIC)

A candidate password is verified by decrypting the check record; real
secrets are never touched for verification. The stored cost, not the cost in
the current VaultConfig, is used to derive the master key, so reopening a
vault with different settings never locks out the correct password.
"""
import hmac
import logging

from .crypto import (
    PASSWORD_CHECK_MAGIC,
    aead_encrypt,
    decrypt_parts,
    derive_key,
    generate_salt,
    wipe,
)
from .exceptions import (
    AlreadyInitialized,
    AuthenticationFailure,
    Corrupted,
    NotInitialized,
)
from .key_rotation import rewrap_master_key
from .store import VaultStore, envelope, require_blob

logger = logging.getLogger("sitecheck.vault")

_SELECT_CONFIG = "SELECT iv, auth_tag, ciphertext FROM config WHERE key = ?"

_COST_LENGTH = 4

_UPSERT_CONFIG = """
INSERT INTO config (key, iv, auth_tag, ciphertext) VALUES (?, ?, ?, ?)
ON CONFLICT (key) DO UPDATE SET
    iv = excluded.iv,
    auth_tag = excluded.auth_tag,
    ciphertext = excluded.ciphertext
"""


def is_initialized(store: VaultStore) -> bool:
    return store.fetchone(_SELECT_CONFIG, ("salt",)) is not None


def _read_salt(store: VaultStore) -> bytes:
    row = store.fetchone(_SELECT_CONFIG, ("salt",))
    if row is None:
        raise NotInitialized("Vault not initialized. Run 'vault init' first.")
    return require_blob(row, "ciphertext")


def read_scrypt_cost(store: VaultStore) -> int:
    """Return the scrypt N recorded for this vault.

    Vaults written before the cost was recorded fall back to the
    configured cost.
    """
    row = store.fetchone(_SELECT_CONFIG, ("scrypt_cost",))
    if row is None:
        return store.config.scrypt_cost
    raw = require_blob(row, "ciphertext")
    if len(raw) != _COST_LENGTH:
        raise Corrupted("Vault corrupted: malformed scrypt cost record")
    return int.from_bytes(raw, "big")


def _write_config(
    store: VaultStore, salt: bytes, cost: int, master_key: bytearray,
) -> None:
    check = aead_encrypt(master_key, PASSWORD_CHECK_MAGIC)
    store.execute(_UPSERT_CONFIG, ("salt", None, None, salt))
    store.execute(
        _UPSERT_CONFIG,
        ("scrypt_cost", None, None, cost.to_bytes(_COST_LENGTH, "big")),
    )
    store.execute(
        _UPSERT_CONFIG,
        ("password_check", check.iv, check.auth_tag, check.ciphertext),
    )


def _verify_master_key(store: VaultStore, master_key: bytearray) -> None:
    row = store.fetchone(_SELECT_CONFIG, ("password_check",))
    if row is None:
        raise Corrupted("Vault corrupted: missing password check")
    try:
        decrypted = decrypt_parts(master_key, envelope(row, ""))
    except AuthenticationFailure as err:
        raise AuthenticationFailure(
            "Vault decryption failed: wrong password or corrupted vault"
        ) from err
    except Corrupted as err:
        raise Corrupted("Vault corrupted: malformed password check") from err
    if not hmac.compare_digest(bytes(decrypted), PASSWORD_CHECK_MAGIC):
        raise AuthenticationFailure(
            "Vault decryption failed: wrong password or corrupted vault"
        )


def initialize(store: VaultStore, password: str) -> None:
    """Set up a fresh vault protected by ``password``.

    Raises:
        AlreadyInitialized: If a salt record already exists.
    """
    if is_initialized(store):
        raise AlreadyInitialized("Vault is already initialized")
    salt = generate_salt()
    cost = store.config.scrypt_cost
    master_key = derive_key(password, salt, cost)
    try:
        with store.savepoint("initialize"):
            _write_config(store, salt, cost, master_key)
    finally:
        wipe(master_key)
    logger.info("Vault initialized at %s", store.config.path)


def derive_master_key(store: VaultStore, password: str) -> bytearray:
    """Derive and verify the master key for ``password``.

    Args:
        store: Open vault.
        password: Candidate operator password.

    Returns:
        32-byte master key.

    Raises:
        NotInitialized: No salt record.
        Corrupted: Salt present but the password check or cost record is
            missing or malformed.
        AuthenticationFailure: Wrong password.
    """
    salt = _read_salt(store)
    master_key = derive_key(password, salt, read_scrypt_cost(store))
    try:
        _verify_master_key(store, master_key)
    except Exception:
        wipe(master_key)
        raise
    return master_key


def change_password(store: VaultStore, old_password: str, new_password: str) -> None:
    """Re-key the vault under a new password in one transaction.

    Replaces the salt and password check, rewraps every project key and
    every master-wrapped DEK, and deletes all sessions. Value ciphertext
    and project-wrapped DEKs are left untouched. On any failure nothing
    is changed.

    The new key is derived with the currently configured scrypt cost,
    which becomes the vault's recorded cost.
    """
    old_master_key = derive_master_key(store, old_password)
    new_master_key = None
    try:
        new_salt = generate_salt()
        new_cost = store.config.scrypt_cost
        new_master_key = derive_key(new_password, new_salt, new_cost)
        with store.savepoint("change_password"):
            _write_config(store, new_salt, new_cost, new_master_key)
            stats = rewrap_master_key(store, old_master_key, new_master_key)
            sessions = store.execute("DELETE FROM sessions").rowcount
    finally:
        wipe(old_master_key)
        wipe(new_master_key)
    logger.info(
        "Vault password changed: %d project(s), %d detail(s) rewrapped, "
        "%d session(s) revoked",
        stats["projects"], stats["details"], sessions,
    )

"""
Admin sessions — time-boxed access to the master key without the password.

A session row stores the master key wrapped under a random session key.
Only the caller's token carries the session key, so the row alone is
useless. Expired rows are pruned lazily whenever a new session is created;
there is no background sweep.

Security Note:
    Never log tokens or session keys. Only log expiry times and counts.
"""
import time
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from .crypto import (
    SESSION_ID_LENGTH,
    aead_encrypt,
    decrypt_parts,
    export_session_token,
    generate_key,
    parse_session_token,
    wipe,
)
from .exceptions import AuthenticationFailure, Expired, SessionNotFound
from .store import VaultStore, envelope

logger = logging.getLogger("sitecheck.vault")

_INSERT_SESSION = """
INSERT INTO sessions (id, iv, auth_tag, ciphertext, expires_at)
VALUES (?, ?, ?, ?, ?)
"""

_SELECT_SESSION = """
SELECT iv, auth_tag, ciphertext, expires_at FROM sessions WHERE id = ?
"""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def prune_expired_sessions(store: VaultStore) -> int:
    """Delete every session past its expiry. Returns the number removed."""
    removed = store.execute(
        "DELETE FROM sessions WHERE expires_at < ?", (_now_ms(),),
    ).rowcount
    if removed:
        logger.debug("Pruned %d expired session(s)", removed)
    return removed


def create_session(
    store: VaultStore,
    master_key: bytearray,
    duration_minutes: Optional[int] = None,
) -> str:
    """Open an admin session for an already-verified master key.

    Args:
        store: Open vault.
        master_key: Verified master key to wrap.
        duration_minutes: Lifetime; defaults to ``config.session_minutes``.

    Returns:
        Session token, base64(session_id ‖ session_key).
    """
    if duration_minutes is None:
        duration_minutes = store.config.session_minutes
    session_id = secrets.token_bytes(SESSION_ID_LENGTH)
    session_key = generate_key()
    try:
        wrapped = aead_encrypt(session_key, master_key)
        expires_at = _now_ms() + duration_minutes * 60 * 1000

        prune_expired_sessions(store)
        store.execute(_INSERT_SESSION, (session_id, *wrapped, expires_at))
        token = export_session_token(session_id, session_key)
    finally:
        wipe(session_key)
    logger.debug("Created admin session expiring %s", _to_datetime(expires_at).isoformat())
    return token


def get_master_key_from_session(store: VaultStore, token: str) -> bytearray:
    """Recover the master key from a session token.

    Expiry is checked before any decryption is attempted.

    Raises:
        InvalidToken: Token does not decode to 48 bytes.
        SessionNotFound: No such session (revoked, pruned or password changed).
        Expired: Session is past its expiry.
        AuthenticationFailure: Session key does not open the row.
    """
    session_id, session_key = parse_session_token(token)
    row = store.fetchone(_SELECT_SESSION, (session_id,))
    if row is None:
        raise SessionNotFound("Admin session not found")
    if _now_ms() > row["expires_at"]:
        raise Expired("Admin session expired")
    try:
        return decrypt_parts(session_key, envelope(row, ""))
    except AuthenticationFailure as err:
        raise AuthenticationFailure(
            "Admin session decryption failed: invalid token"
        ) from err


def get_session_expiry(store: VaultStore, token: str) -> Optional[datetime]:
    """Return the session's expiry (UTC), or None if it no longer exists."""
    session_id, _ = parse_session_token(token)
    row = store.fetchone("SELECT expires_at FROM sessions WHERE id = ?", (session_id,))
    if row is None:
        return None
    return _to_datetime(row["expires_at"])


def delete_session(store: VaultStore, token: str) -> None:
    """Revoke a session (logout)."""
    session_id, _ = parse_session_token(token)
    cursor = store.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
    if cursor.rowcount == 0:
        raise SessionNotFound("Admin session not found")
    logger.debug("Deleted admin session")

"""
Vault Crypto Core — Key derivation, envelope encryption, and token encoding.

Implements the primitives every vault layer is built from:
- Password layer: scrypt(password, salt) → 32-byte master key
- Envelope layer: AES-256-GCM with a fresh 96-bit IV per call, stored as
  separate (iv, auth_tag, ciphertext) columns
- Tokens: base64(project_key) and base64(session_id ‖ session_key)

Security Note:
    Never log plaintext, ciphertext, keys or tokens.
    IVs are random 96-bit per call and are never reused under the same key.
"""
import os
import base64
import binascii
import secrets
import logging
from typing import NamedTuple, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import AuthenticationFailure, Corrupted, InvalidToken

logger = logging.getLogger("sitecheck.vault")

KEY_LENGTH = 32  # AES-256
SALT_LENGTH = 32
IV_LENGTH = 12  # 96-bit nonce
AUTH_TAG_LENGTH = 16
SESSION_ID_LENGTH = 16
SESSION_TOKEN_LENGTH = SESSION_ID_LENGTH + KEY_LENGTH

# scrypt parameters. N is taken from VaultConfig and must stay fixed for the
# lifetime of a vault; r and p are not tunable.
SCRYPT_COST = 2 ** 17
SCRYPT_BLOCK_SIZE = 8
SCRYPT_PARALLELIZATION = 1

PASSWORD_CHECK_MAGIC = b"sitecheck-vault-v1"

Buffer = Union[bytes, bytearray]


class EncryptedParts(NamedTuple):
    """One AEAD envelope, as persisted in three BLOB columns."""

    iv: bytes
    auth_tag: bytes
    ciphertext: bytes


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------

def generate_key() -> bytearray:
    """Return a fresh random 32-byte key as a wipeable buffer."""
    return bytearray(secrets.token_bytes(KEY_LENGTH))


def generate_salt() -> bytes:
    return secrets.token_bytes(SALT_LENGTH)


def wipe(buf: Optional[bytearray]) -> None:
    """Overwrite a key buffer with zeros in place.

    Only mutable buffers can be cleared; ``bytes`` objects are left to the
    garbage collector.
    """
    if isinstance(buf, bytearray):
        for i in range(len(buf)):
            buf[i] = 0


def derive_key(password: str, salt: bytes, cost: int = SCRYPT_COST) -> bytearray:
    """Derive a 32-byte master key from a password with scrypt.

    Args:
        password: Operator password.
        salt: Raw salt from the config table.
        cost: scrypt N (CPU/memory cost). Must match the value used when
            the vault was initialized.

    Returns:
        32-byte derived key.
    """
    kdf = Scrypt(
        salt=salt,
        length=KEY_LENGTH,
        n=cost,
        r=SCRYPT_BLOCK_SIZE,
        p=SCRYPT_PARALLELIZATION,
    )
    return bytearray(kdf.derive(password.encode("utf-8")))


# ---------------------------------------------------------------------------
# AEAD
# ---------------------------------------------------------------------------

def aead_encrypt(key: Buffer, plaintext: Buffer) -> EncryptedParts:
    """Encrypt plaintext with AES-256-GCM under a fresh random IV.

    Args:
        key: 32-byte key.
        plaintext: Data to encrypt.

    Returns:
        EncryptedParts with the 12-byte IV, 16-byte tag and ciphertext.
    """
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    return EncryptedParts(
        iv=iv,
        auth_tag=sealed[-AUTH_TAG_LENGTH:],
        ciphertext=sealed[:-AUTH_TAG_LENGTH],
    )


def aead_decrypt(
    key: Buffer,
    iv: bytes,
    auth_tag: bytes,
    ciphertext: bytes,
) -> bytearray:
    """Decrypt and authenticate an AES-256-GCM envelope.

    Args:
        key: 32-byte key.
        iv: 12-byte IV stored with the envelope.
        auth_tag: 16-byte authentication tag.
        ciphertext: Encrypted payload without the tag.

    Returns:
        Decrypted plaintext.

    Raises:
        AuthenticationFailure: If the tag does not verify (wrong key or
            tampered data). No partial plaintext is ever returned.
        Corrupted: If the IV or tag has the wrong length.
    """
    if len(iv) != IV_LENGTH or len(auth_tag) != AUTH_TAG_LENGTH:
        raise Corrupted("Malformed envelope: bad IV or tag length")
    try:
        plaintext = AESGCM(key).decrypt(
            bytes(iv), bytes(ciphertext) + bytes(auth_tag), None,
        )
    except InvalidTag as err:
        raise AuthenticationFailure(
            "Decryption failed: wrong key or tampered data"
        ) from err
    return bytearray(plaintext)


def decrypt_parts(key: Buffer, parts: EncryptedParts) -> bytearray:
    return aead_decrypt(key, parts.iv, parts.auth_tag, parts.ciphertext)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def _b64decode_exact(token: str, length: int, kind: str) -> bytes:
    try:
        raw = base64.b64decode(token.strip(), validate=True)
    except (binascii.Error, ValueError) as err:
        raise InvalidToken(f"Invalid {kind} token: not valid base64") from err
    if len(raw) != length:
        raise InvalidToken(
            f"Invalid {kind} token: expected {length} bytes, got {len(raw)}"
        )
    return raw


def export_token(project_key: Buffer) -> str:
    """Encode a raw project key as an exportable project token."""
    return base64.b64encode(bytes(project_key)).decode("ascii")


def parse_token(token: str) -> bytes:
    """Decode a project token back to its 32-byte project key.

    Raises:
        InvalidToken: If the token is not base64 or not exactly 32 bytes.
    """
    return _b64decode_exact(token, KEY_LENGTH, "project")


def export_session_token(session_id: bytes, session_key: Buffer) -> str:
    return base64.b64encode(bytes(session_id) + bytes(session_key)).decode("ascii")


def parse_session_token(token: str) -> tuple[bytes, bytes]:
    """Split a session token into (session_id, session_key).

    Raises:
        InvalidToken: If the token does not decode to exactly 48 bytes.
    """
    raw = _b64decode_exact(token, SESSION_TOKEN_LENGTH, "session")
    return raw[:SESSION_ID_LENGTH], raw[SESSION_ID_LENGTH:]

"""
Tests for the vault crypto primitives.

Tests cover:
- scrypt key derivation
- AES-256-GCM envelopes and tamper detection
- Strict project and session token decoding
"""
import base64

import pytest

from sitecheck.vault.crypto import (
    AUTH_TAG_LENGTH,
    IV_LENGTH,
    KEY_LENGTH,
    EncryptedParts,
    aead_decrypt,
    aead_encrypt,
    decrypt_parts,
    derive_key,
    export_session_token,
    export_token,
    generate_key,
    generate_salt,
    parse_session_token,
    parse_token,
    wipe,
)
from sitecheck.vault.exceptions import AuthenticationFailure, Corrupted, InvalidToken

COST = 2 ** 10


class TestDeriveKey:
    """Tests for password-based key derivation."""

    def test_key_length(self):
        key = derive_key("pw", generate_salt(), COST)
        assert len(key) == KEY_LENGTH

    def test_deterministic_for_same_salt(self):
        salt = generate_salt()
        assert derive_key("pw", salt, COST) == derive_key("pw", salt, COST)

    def test_differs_by_password_and_salt(self):
        salt = generate_salt()
        base = derive_key("pw", salt, COST)
        assert derive_key("pw2", salt, COST) != base
        assert derive_key("pw", generate_salt(), COST) != base

    def test_differs_by_cost(self):
        salt = generate_salt()
        assert derive_key("pw", salt, COST) != derive_key("pw", salt, COST * 2)


class TestAead:
    """Tests for AES-256-GCM encryption."""

    def test_roundtrip(self):
        key = generate_key()
        parts = aead_encrypt(key, b"secret value")
        assert decrypt_parts(key, parts) == b"secret value"

    def test_envelope_shape(self):
        parts = aead_encrypt(generate_key(), b"abc")
        assert isinstance(parts, EncryptedParts)
        assert len(parts.iv) == IV_LENGTH
        assert len(parts.auth_tag) == AUTH_TAG_LENGTH
        assert len(parts.ciphertext) == 3

    def test_empty_plaintext(self):
        key = generate_key()
        assert decrypt_parts(key, aead_encrypt(key, b"")) == b""

    def test_fresh_iv_per_call(self):
        key = generate_key()
        first = aead_encrypt(key, b"same")
        second = aead_encrypt(key, b"same")
        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext

    def test_wrong_key_fails_authentication(self):
        parts = aead_encrypt(generate_key(), b"secret")
        with pytest.raises(AuthenticationFailure):
            decrypt_parts(generate_key(), parts)

    def test_tampered_ciphertext_fails_authentication(self):
        key = generate_key()
        iv, tag, ct = aead_encrypt(key, b"secret")
        tampered = bytes([ct[0] ^ 0x01]) + ct[1:]
        with pytest.raises(AuthenticationFailure):
            aead_decrypt(key, iv, tag, tampered)

    def test_tampered_tag_fails_authentication(self):
        key = generate_key()
        iv, tag, ct = aead_encrypt(key, b"secret")
        with pytest.raises(AuthenticationFailure):
            aead_decrypt(key, iv, bytes(AUTH_TAG_LENGTH), ct)

    def test_truncated_iv_is_corrupted(self):
        key = generate_key()
        iv, tag, ct = aead_encrypt(key, b"secret")
        with pytest.raises(Corrupted, match="Malformed envelope"):
            aead_decrypt(key, iv[:-1], tag, ct)

    def test_short_tag_is_corrupted(self):
        key = generate_key()
        iv, tag, ct = aead_encrypt(key, b"secret")
        with pytest.raises(Corrupted):
            aead_decrypt(key, iv, tag[:8], ct)


class TestWipe:

    def test_zeroes_bytearray(self):
        key = generate_key()
        wipe(key)
        assert key == bytearray(KEY_LENGTH)

    def test_ignores_none_and_bytes(self):
        wipe(None)
        data = b"immutable"
        wipe(data)
        assert data == b"immutable"


class TestTokens:
    """Tests for token encoding and strict length validation."""

    def test_project_token_roundtrip(self):
        key = generate_key()
        assert parse_token(export_token(key)) == bytes(key)

    def test_project_token_rejects_short(self):
        token = base64.b64encode(b"x" * 16).decode()
        with pytest.raises(InvalidToken, match="expected 32 bytes, got 16"):
            parse_token(token)

    def test_project_token_rejects_session_token(self):
        token = export_session_token(b"i" * 16, generate_key())
        with pytest.raises(InvalidToken):
            parse_token(token)

    def test_project_token_rejects_garbage(self):
        with pytest.raises(InvalidToken):
            parse_token("not base64 at all!")

    def test_invalid_token_is_value_error(self):
        with pytest.raises(ValueError):
            parse_token("")

    def test_session_token_roundtrip(self):
        session_id = b"s" * 16
        session_key = generate_key()
        parsed_id, parsed_key = parse_session_token(
            export_session_token(session_id, session_key)
        )
        assert parsed_id == session_id
        assert parsed_key == bytes(session_key)

    def test_session_token_rejects_project_token(self):
        with pytest.raises(InvalidToken, match="expected 48 bytes, got 32"):
            parse_session_token(export_token(generate_key()))

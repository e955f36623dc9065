"""
Legacy vault import — migrate the single-file vault into the store.

The previous vault format was one encrypted file holding every secret:

    [salt 32B][iv 12B][auth_tag 16B][ciphertext]

keyed by scrypt(password, salt, N=16384, r=8, p=1), whose plaintext is the
JSON document ``{task: {KEY: value}}``. Each task becomes a project and each
key a detail.

Security Note:
    Decrypted legacy content exists in memory only for the duration of the
    import. Never log values.
"""
import logging
from pathlib import Path
from typing import Union

import orjson
from pydantic import TypeAdapter, ValidationError

from .crypto import AUTH_TAG_LENGTH, IV_LENGTH, SALT_LENGTH, aead_decrypt, derive_key, wipe
from .details import set_detail
from .exceptions import Corrupted
from .projects import project_exists, create_project
from .store import VaultStore

logger = logging.getLogger("sitecheck.vault")

LEGACY_SCRYPT_COST = 16384
_HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + AUTH_TAG_LENGTH

LegacyData = dict[str, dict[str, str]]

_legacy_adapter = TypeAdapter(LegacyData)


def read_legacy_vault(path: Union[str, Path], password: str) -> LegacyData:
    """Decrypt and validate a legacy vault file.

    Args:
        path: Location of the legacy ``vault.enc`` file.
        password: Password the legacy file was written with.

    Returns:
        Mapping of task name to {key: value}. Empty if the file is missing.

    Raises:
        Corrupted: File too short, or decrypted content is not the
            expected JSON shape.
        AuthenticationFailure: Wrong password or tampered file.
    """
    path = Path(path)
    if not path.exists():
        return {}
    raw = path.read_bytes()
    if len(raw) < _HEADER_LENGTH + 1:
        raise Corrupted("Vault file is corrupted or empty")

    salt = raw[:SALT_LENGTH]
    iv = raw[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
    auth_tag = raw[SALT_LENGTH + IV_LENGTH:_HEADER_LENGTH]
    ciphertext = raw[_HEADER_LENGTH:]

    key = derive_key(password, salt, LEGACY_SCRYPT_COST)
    try:
        plaintext = aead_decrypt(key, iv, auth_tag, ciphertext)
    finally:
        wipe(key)
    try:
        return _legacy_adapter.validate_python(orjson.loads(plaintext))
    except (orjson.JSONDecodeError, ValidationError) as err:
        raise Corrupted(f"Legacy vault content is malformed: {err}") from err
    finally:
        wipe(plaintext)


def import_legacy_vault(
    store: VaultStore,
    master_key: bytearray,
    path: Union[str, Path],
    password: str,
) -> dict:
    """Copy every secret of a legacy vault file into the store.

    Missing projects are created; existing details are overwritten. The
    import runs in one savepoint, so a failure leaves the store unchanged.
    Tokens of newly created projects can be re-exported afterwards with
    ``export_project_token``.

    Returns:
        Stats dict with keys: projects_created, details_imported.
    """
    data = read_legacy_vault(path, password)
    stats = {"projects_created": 0, "details_imported": 0}
    with store.savepoint("import_legacy"):
        for task, secrets in data.items():
            if not project_exists(store, task):
                create_project(store, master_key, task)
                stats["projects_created"] += 1
            for key, value in secrets.items():
                set_detail(store, master_key, task, key, value)
                stats["details_imported"] += 1
    logger.info("Legacy vault import complete: %s", stats)
    return stats

"""Vault error kinds.

Each failure mode a caller may need to tell apart has its own class.
Everything derives from ``VaultError`` so callers can also catch broadly.
"""


class VaultError(Exception):
    """Base class for every vault failure."""


class NotInitialized(VaultError):
    """The store has no salt record; ``initialize`` was never run."""


class AuthenticationFailure(VaultError):
    """AEAD tag or password check mismatch.

    Raised for a wrong password, a wrong project token, or tampered
    ciphertext. The three are indistinguishable by construction.
    """


class NotFound(VaultError):
    """A referenced row does not exist."""


class ProjectNotFound(NotFound):
    pass


class DetailNotFound(NotFound):
    pass


class SessionNotFound(NotFound):
    pass


class AlreadyExists(VaultError):
    """A row that must be unique already exists."""


class ProjectExists(AlreadyExists):
    pass


class AlreadyInitialized(AlreadyExists):
    pass


class Corrupted(VaultError):
    """A required companion record is missing or malformed."""


class Expired(VaultError):
    """The session is past its expiry time."""


class InvalidToken(VaultError, ValueError):
    """A token does not decode to the expected number of bytes."""


class InvalidName(VaultError, ValueError):
    """A project name contains characters outside ``[A-Za-z0-9_-]``."""

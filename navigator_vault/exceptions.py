"""Navigator Vault exceptions."""


class VaultError(Exception):
    """Base class for all vault errors."""


class InvalidPolicy(VaultError, ValueError):
    """Password policy leaves no characters to draw from."""


class InvalidSalt(VaultError, ValueError):
    """Salt is missing, malformed or shorter than the minimum length."""


class DecryptionFailed(VaultError):
    """A sealed record could not be opened.

    Raised for a wrong passphrase and for corrupted or tampered data alike;
    the message never says which.
    """

    def __init__(self, message: str = "Unable to open vault record"):
        super().__init__(message)


class NotFound(VaultError, KeyError):
    """Record id is unknown or not owned by the caller."""


class VaultStoreError(VaultError):
    """Remote store answered with an unexpected error."""

"""Navigator Vault.

Password generator and client-side encrypted credential vault.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    InvalidPolicy,
    InvalidSalt,
    DecryptionFailed,
    NotFound,
    VaultStoreError,
)
from .generator import PasswordPolicy, generate, strength, strength_label

__all__ = (
    "__version__",
    "VaultError",
    "InvalidPolicy",
    "InvalidSalt",
    "DecryptionFailed",
    "NotFound",
    "VaultStoreError",
    "PasswordPolicy",
    "generate",
    "strength",
    "strength_label",
)

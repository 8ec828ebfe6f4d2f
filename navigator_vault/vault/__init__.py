"""Vault — Client-side sealed storage for password-manager records.

Security Note (Threat Model):
    The remote store only ever receives sealed records: a length-prefixed
    envelope of salt and AEAD ciphertext. The master passphrase is never
    persisted or transmitted; losing it makes every record unrecoverable.
    Opened records live in process memory while a session uses them. A
    compromised client runtime (memory scraping, malicious extensions) is
    out of scope.
"""

from .config import VaultConfig
from .crypto import ScopedSecret, derive_key, generate_salt, seal, open_record
from .records import (
    VaultRecord,
    EncryptedRecord,
    pack_envelope,
    unpack_envelope,
)
from .session_vault import VaultSession, VaultListing
from .stores import VaultStore, MemoryVaultStore, HttpVaultStore
from .key_rotation import reseal_records

__all__ = [
    "VaultConfig",
    "ScopedSecret",
    "derive_key",
    "generate_salt",
    "seal",
    "open_record",
    "VaultRecord",
    "EncryptedRecord",
    "pack_envelope",
    "unpack_envelope",
    "VaultSession",
    "VaultListing",
    "VaultStore",
    "MemoryVaultStore",
    "HttpVaultStore",
    "reseal_records",
]

"""
Vault Crypto Core — Key derivation, record sealing/opening and scoped secrets.

Sealing a record:
    salt (fresh, CSPRNG) → PBKDF2-HMAC-SHA256(passphrase, salt, N) → key
    key → AEAD(nonce, canonical record, aad=header) → blob

Blob format:
    [version 1B][cipher_id 1B][iterations 4B uint32 BE][nonce 12B][payload + tag 16B]

The 6-byte header is authenticated as associated data, so the work factor
travels with each record and cannot be altered without failing the tag.

Security Note:
    Never log plaintext, passphrases, keys, salts or ciphertext values.
    Nonces are random 96-bit and every seal derives a new key from a new salt,
    so a (key, nonce) pair is never reused.
"""
import os
import struct
import logging
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import DecryptionFailed, InvalidSalt
from .config import (
    VaultConfig,
    DEFAULT_ITERATIONS,
    DEFAULT_SALT_SIZE,
    MIN_ITERATIONS,
    MAX_ITERATIONS,
    MIN_SALT_SIZE,
)
from .records import VaultRecord, serialize_record, deserialize_record

logger = logging.getLogger("navigator.vault")

FORMAT_VERSION = 1
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256
_HEADER = struct.Struct("!BBI")

CIPHERS = {
    1: AESGCM,
    2: ChaCha20Poly1305,
}
CIPHER_IDS = {
    "aesgcm": 1,
    "chacha20": 2,
}


# ---------------------------------------------------------------------------
# Scoped secrets
# ---------------------------------------------------------------------------

class ScopedSecret:
    """Secret bytes held in a mutable buffer that is zeroed on release.

    Python may still keep copies (interned strings, the ``bytes`` handed to
    a cipher), so this narrows plaintext residency rather than guaranteeing
    erasure.

    Usage::

        with ScopedSecret(passphrase) as secret:
            vault.list(records, secret)
    """

    __slots__ = ("_buffer", "_wiped")

    def __init__(self, value: Union[str, bytes, bytearray]):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._buffer = bytearray(value)
        self._wiped = False

    def reveal(self) -> bytes:
        """Return the secret bytes.

        Raises:
            ValueError: If the secret was already wiped.
        """
        if self._wiped:
            raise ValueError("Scoped secret has been wiped")
        return bytes(self._buffer)

    def wipe(self) -> None:
        """Overwrite the backing buffer with zeros."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._wiped = True

    @property
    def wiped(self) -> bool:
        return self._wiped

    def __len__(self) -> int:
        return len(self._buffer)

    def __enter__(self) -> "ScopedSecret":
        return self

    def __exit__(self, *exc) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return "<ScopedSecret [wiped]>" if self._wiped else "<ScopedSecret ***>"

    def __del__(self) -> None:
        try:
            self.wipe()
        except AttributeError:
            pass


Passphrase = Union[str, bytes, ScopedSecret]


def _passphrase_bytes(passphrase: Passphrase) -> bytes:
    if isinstance(passphrase, ScopedSecret):
        return passphrase.reveal()
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    if isinstance(passphrase, (bytes, bytearray)):
        return bytes(passphrase)
    raise TypeError(f"Unsupported passphrase type: {type(passphrase).__name__}")


def passphrase_fingerprint(passphrase: Passphrase, key: bytes) -> bytes:
    """Keyed HMAC-SHA256 of a passphrase.

    Lets a caller recognise the same passphrase later without holding it;
    the fingerprint is meaningless once ``key`` is discarded.
    """
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(_passphrase_bytes(passphrase))
    return mac.finalize()


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def generate_salt(size: int = DEFAULT_SALT_SIZE) -> bytes:
    """Return a fresh random salt of at least 128 bits."""
    if size < MIN_SALT_SIZE:
        raise InvalidSalt(f"salt must be at least {MIN_SALT_SIZE} bytes")
    return os.urandom(size)


def derive_key(
    passphrase: Passphrase,
    salt: bytes,
    iterations: int = DEFAULT_ITERATIONS,
) -> bytes:
    """Derive a 32-byte encryption key using PBKDF2-HMAC-SHA256.

    Same ``(passphrase, salt, iterations)`` always yields the same key.

    Args:
        passphrase: Master passphrase.
        salt: Per-record salt, at least 16 bytes.
        iterations: PBKDF2 work factor, at least 10,000.

    Returns:
        32-byte derived key.

    Raises:
        InvalidSalt: If salt is not bytes or is shorter than 16 bytes.
        ValueError: If iterations is outside the accepted range.
    """
    if not isinstance(salt, (bytes, bytearray)) or len(salt) < MIN_SALT_SIZE:
        raise InvalidSalt(f"salt must be at least {MIN_SALT_SIZE} bytes")
    if not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
        raise ValueError(
            f"iterations must be between {MIN_ITERATIONS} and {MAX_ITERATIONS}"
        )
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=iterations,
    )
    return kdf.derive(_passphrase_bytes(passphrase))


# ---------------------------------------------------------------------------
# Record cipher
# ---------------------------------------------------------------------------

def read_iterations(ciphertext: bytes) -> Optional[int]:
    """Return the work factor stored in a blob header, or None if unreadable."""
    if len(ciphertext) < _HEADER.size:
        return None
    _, _, iterations = _HEADER.unpack_from(ciphertext)
    return iterations


def seal(
    record: VaultRecord,
    passphrase: Passphrase,
    config: Optional[VaultConfig] = None,
) -> tuple[bytes, bytes]:
    """Encrypt a record under a key derived from a fresh salt.

    Args:
        record: Plaintext record.
        passphrase: Master passphrase.
        config: Work factor, salt size and cipher; defaults when omitted.

    Returns:
        Tuple of ``(ciphertext_blob, salt)``.
    """
    if config is None:
        config = VaultConfig()
    cipher_id = CIPHER_IDS[config.cipher_backend]
    salt = generate_salt(config.salt_size)
    header = _HEADER.pack(FORMAT_VERSION, cipher_id, config.kdf_iterations)
    nonce = os.urandom(NONCE_SIZE)
    plaintext = serialize_record(record)
    with ScopedSecret(derive_key(passphrase, salt, config.kdf_iterations)) as key:
        cipher = CIPHERS[cipher_id](key.reveal())
        ct = cipher.encrypt(nonce, plaintext, header)
    return header + nonce + ct, salt


def open_record(
    ciphertext: bytes,
    salt: bytes,
    passphrase: Passphrase,
    config: Optional[VaultConfig] = None,
) -> VaultRecord:
    """Decrypt and authenticate a sealed record.

    Args:
        ciphertext: Blob produced by ``seal``.
        salt: Salt produced together with the blob.
        passphrase: Master passphrase.
        config: Supplies the minimum accepted work factor.

    Returns:
        The complete VaultRecord.

    Raises:
        DecryptionFailed: On any failure; wrong passphrase and corrupted or
            tampered data are indistinguishable.
    """
    min_iterations = config.min_iterations if config is not None else MIN_ITERATIONS
    if len(ciphertext) < _HEADER.size + NONCE_SIZE + TAG_SIZE:
        raise DecryptionFailed()
    version, cipher_id, iterations = _HEADER.unpack_from(ciphertext)
    if (
        version != FORMAT_VERSION
        or cipher_id not in CIPHERS
        or not min_iterations <= iterations <= MAX_ITERATIONS
    ):
        raise DecryptionFailed()
    header = ciphertext[:_HEADER.size]
    nonce = ciphertext[_HEADER.size:_HEADER.size + NONCE_SIZE]
    ct = ciphertext[_HEADER.size + NONCE_SIZE:]
    try:
        with ScopedSecret(derive_key(passphrase, salt, iterations)) as key:
            plaintext = CIPHERS[cipher_id](key.reveal()).decrypt(nonce, ct, header)
        return deserialize_record(plaintext)
    except (InvalidTag, InvalidSalt, ValueError):
        raise DecryptionFailed() from None

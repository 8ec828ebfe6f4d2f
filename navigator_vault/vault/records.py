"""
Vault Records — Plaintext and sealed record models, canonical serialization,
and the storage envelope.

Storage envelope (replaces the old ``ciphertext + ':' + salt`` packing):
    [salt_len 1B][salt][ciphertext blob]

The text form carried by JSON transports as ``ciphertextAndSalt`` is the
standard base64 encoding of that envelope.

Security Note:
    ``VaultRecord`` exists only transiently in memory. ``EncryptedRecord`` is
    the only shape that is ever persisted and carries no plaintext fields.
"""
import base64
import binascii
from typing import Optional, Any
from datetime import datetime

import orjson
from pydantic import BaseModel, ConfigDict, field_validator, ValidationError

from ..exceptions import DecryptionFailed

RECORD_FIELDS = ("title", "username", "secret", "url", "notes")
_MAX_SALT_LEN = 255


class VaultRecord(BaseModel):
    """Plaintext credential record."""

    model_config = ConfigDict(frozen=True)

    title: str
    username: str = ""
    secret: str = ""
    url: str = ""
    notes: str = ""

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Vault record title cannot be empty")
        return v

    @field_validator("username", "secret", "url", "notes", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def __repr__(self) -> str:
        # secret and notes stay out of logs and tracebacks
        return (
            f"<VaultRecord title={self.title!r} username={self.username!r} "
            f"url={self.url!r}>"
        )

    __str__ = __repr__

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match over the searchable fields."""
        needle = query.casefold()
        return any(
            needle in value.casefold()
            for value in (self.title, self.username, self.url, self.notes)
        )


class EncryptedRecord(BaseModel):
    """Sealed record as stored by the remote store."""

    id: Optional[str] = None
    owner_id: str
    ciphertext: bytes
    salt: bytes
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def envelope(self) -> bytes:
        return pack_envelope(self.ciphertext, self.salt)

    def to_wire(self) -> dict:
        """Return the JSON-safe shape exchanged with the remote store."""
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "ciphertextAndSalt": encode_envelope(self.ciphertext, self.salt),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_wire(cls, data: dict) -> "EncryptedRecord":
        """Build an EncryptedRecord from its wire shape.

        Raises:
            DecryptionFailed: If ``ciphertextAndSalt`` is malformed.
        """
        ciphertext, salt = decode_envelope(data.get("ciphertextAndSalt") or "")
        record_id = data.get("id")
        if record_id is None:
            record_id = data.get("_id")
        return cls(
            id=str(record_id) if record_id is not None else None,
            owner_id=str(data.get("ownerId") or data.get("userId") or ""),
            ciphertext=ciphertext,
            salt=salt,
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


# ---------------------------------------------------------------------------
# Canonical serialization
# ---------------------------------------------------------------------------

def serialize_record(record: VaultRecord) -> bytes:
    """Serialize a record to canonical bytes (sorted keys, every field present)."""
    return orjson.dumps(
        {name: getattr(record, name) for name in RECORD_FIELDS},
        option=orjson.OPT_SORT_KEYS,
    )


def deserialize_record(data: bytes) -> VaultRecord:
    """Rebuild a VaultRecord; absent optional fields become empty strings.

    Raises:
        ValueError: If data is not a serialized record.
    """
    parsed = orjson.loads(data)
    if not isinstance(parsed, dict):
        raise ValueError("Serialized record must be a JSON object")
    try:
        return VaultRecord(**{k: parsed[k] for k in RECORD_FIELDS if k in parsed})
    except ValidationError as err:
        raise ValueError(str(err)) from err


# ---------------------------------------------------------------------------
# Storage envelope
# ---------------------------------------------------------------------------

def pack_envelope(ciphertext: bytes, salt: bytes) -> bytes:
    """Pack a blob and its salt into one length-prefixed envelope."""
    if not salt or len(salt) > _MAX_SALT_LEN:
        raise ValueError(f"salt length must be 1..{_MAX_SALT_LEN} bytes")
    return bytes([len(salt)]) + salt + ciphertext


def unpack_envelope(envelope: bytes) -> tuple[bytes, bytes]:
    """Split an envelope into ``(ciphertext, salt)``.

    Raises:
        DecryptionFailed: If the envelope is truncated.
    """
    if len(envelope) < 2:
        raise DecryptionFailed()
    salt_len = envelope[0]
    if salt_len == 0 or len(envelope) <= 1 + salt_len:
        raise DecryptionFailed()
    salt = envelope[1:1 + salt_len]
    return envelope[1 + salt_len:], salt


def encode_envelope(ciphertext: bytes, salt: bytes) -> str:
    return base64.b64encode(pack_envelope(ciphertext, salt)).decode("ascii")


def decode_envelope(text: str) -> tuple[bytes, bytes]:
    """Decode the base64 ``ciphertextAndSalt`` field.

    Raises:
        DecryptionFailed: If the text is not a valid envelope.
    """
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise DecryptionFailed() from None
    return unpack_envelope(raw)

"""
VaultSession — Encrypt-on-write / decrypt-on-read for one user's vault.

Provides the public API for the client-side vault:
- ``upsert(record, passphrase, record_id)`` — seal and persist a record
- ``delete(record_id)`` — remove a record from the store and the cache
- ``list(records, passphrase)`` — open a batch, isolating per-record failures
- ``load(passphrase)`` — fetch the owner's records and ``list`` them
- ``search(opened, query)`` — filter already-opened records

The passphrase is an explicit argument on every call and is never kept by
the session. Opened plaintext is cached per record id together with the salt
it came from and a keyed fingerprint of the passphrase that opened it; a
cached entry is only served while both still match, and is dropped as soon
as that id is re-sealed.

``upsert`` and ``load`` are coroutines that run key derivation in a worker
thread; ``open`` and ``list`` are synchronous for callers that do
their own scheduling.

Security Note:
    Never log plaintext, passphrases or ciphertext values. Only log record
    ids, counts and owner ids. The fingerprint key lives only in this
    session and is replaced on ``close()``.
"""
import os
import asyncio
import logging
import secrets
import threading
from typing import Optional
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from ..exceptions import DecryptionFailed
from .config import VaultConfig
from .crypto import Passphrase, seal, open_record, passphrase_fingerprint
from .records import VaultRecord, EncryptedRecord
from .stores import VaultStore

logger = logging.getLogger("navigator.vault")

OpenedRecord = tuple[EncryptedRecord, VaultRecord]
_FINGERPRINT_KEY_SIZE = 32


@dataclass
class VaultListing:
    """Result of opening a batch of sealed records."""

    items: list[OpenedRecord] = field(default_factory=list)
    failures: dict[str, DecryptionFailed] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @property
    def records(self) -> list[VaultRecord]:
        return [plain for _, plain in self.items]


class VaultSession:
    """Vault operations for one owner during one passphrase-entry scope.

    Args:
        owner_id: Owner of every record this session touches.
        store: Remote store adapter.
        config: Work factor, salt size and cipher; from environment when omitted.
    """

    def __init__(
        self,
        owner_id: str,
        store: VaultStore,
        config: Optional[VaultConfig] = None,
    ):
        self._owner_id = owner_id
        self._store = store
        self._config = config or VaultConfig.from_env()
        # id -> (salt, passphrase fingerprint, record)
        self._cache: dict[str, tuple[bytes, bytes, VaultRecord]] = {}
        self._cache_lock = threading.Lock()
        self._fingerprint_key = os.urandom(_FINGERPRINT_KEY_SIZE)
        # id -> [lock, number of writers holding or waiting for it]
        self._write_locks: dict[str, list] = {}

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def config(self) -> VaultConfig:
        return self._config

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def _fingerprint(self, passphrase: Passphrase) -> bytes:
        return passphrase_fingerprint(passphrase, self._fingerprint_key)

    def _cached(
        self, record: EncryptedRecord, fingerprint: bytes
    ) -> Optional[VaultRecord]:
        if record.id is None:
            return None
        with self._cache_lock:
            entry = self._cache.get(record.id)
        if entry is None:
            return None
        salt, cached_fingerprint, plain = entry
        if salt != record.salt:
            return None
        if not secrets.compare_digest(cached_fingerprint, fingerprint):
            return None
        return plain

    def _remember(
        self, record: EncryptedRecord, fingerprint: bytes, plain: VaultRecord
    ) -> None:
        if record.id is None:
            return
        with self._cache_lock:
            self._cache[record.id] = (record.salt, fingerprint, plain)

    def invalidate(self, record_id: Optional[str] = None) -> None:
        """Drop one cached record, or every cached record when no id is given."""
        with self._cache_lock:
            if record_id is None:
                self._cache.clear()
            else:
                self._cache.pop(record_id, None)

    def cached_ids(self) -> list[str]:
        with self._cache_lock:
            return list(self._cache.keys())

    def close(self) -> None:
        """End the session and release every cached plaintext record."""
        self.invalidate()
        self._fingerprint_key = os.urandom(_FINGERPRINT_KEY_SIZE)
        logger.debug("Vault session closed: owner=%s", self._owner_id)

    @asynccontextmanager
    async def _writing(self, record_id: str) -> AsyncIterator[None]:
        """Serialize writes to one record id; the lock lives while in use."""
        entry = self._write_locks.get(record_id)
        if entry is None:
            entry = self._write_locks[record_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0 and self._write_locks.get(record_id) is entry:
                del self._write_locks[record_id]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upsert(
        self,
        record: VaultRecord,
        passphrase: Passphrase,
        record_id: Optional[str] = None,
    ) -> EncryptedRecord:
        """Seal a record and hand it to the store.

        A new record is created when ``record_id`` is None; otherwise the
        stored record is replaced by one sealed under a fresh salt.

        Args:
            record: Plaintext record.
            passphrase: Master passphrase.
            record_id: Id of the record to update.

        Returns:
            The sealed record, carrying its store id.

        Raises:
            NotFound: If record_id is unknown or not owned by this owner.
        """
        ciphertext, salt = await asyncio.to_thread(
            seal, record, passphrase, self._config
        )
        sealed = EncryptedRecord(
            id=record_id,
            owner_id=self._owner_id,
            ciphertext=ciphertext,
            salt=salt,
        )
        if record_id is None:
            new_id = await self._store.create(self._owner_id, sealed)
            sealed = sealed.model_copy(update={"id": new_id})
            logger.debug("Vault create: owner=%s id=%s", self._owner_id, new_id)
            return sealed

        async with self._writing(record_id):
            await self._store.update(self._owner_id, record_id, sealed)
            self.invalidate(record_id)
        logger.debug("Vault update: owner=%s id=%s", self._owner_id, record_id)
        return sealed

    async def delete(self, record_id: str) -> None:
        """Delete a record from the store and drop it from the cache.

        Raises:
            NotFound: If record_id is unknown or not owned by this owner.
        """
        async with self._writing(record_id):
            await self._store.delete(self._owner_id, record_id)
            self.invalidate(record_id)
        logger.debug("Vault delete: owner=%s id=%s", self._owner_id, record_id)

    def _open(
        self, record: EncryptedRecord, passphrase: Passphrase, fingerprint: bytes
    ) -> VaultRecord:
        plain = self._cached(record, fingerprint)
        if plain is not None:
            return plain
        plain = open_record(record.ciphertext, record.salt, passphrase, self._config)
        self._remember(record, fingerprint, plain)
        return plain

    def open(
        self, record: EncryptedRecord, passphrase: Passphrase
    ) -> VaultRecord:
        """Open one sealed record, serving it from the cache when possible.

        A cached record is only returned for the passphrase that opened it.

        Raises:
            DecryptionFailed: If the record cannot be opened.
        """
        return self._open(record, passphrase, self._fingerprint(passphrase))

    def list(
        self,
        records: Iterable[EncryptedRecord],
        passphrase: Passphrase,
    ) -> VaultListing:
        """Open every record; failures are reported per id, never raised.

        Args:
            records: Sealed records, usually from ``list_by_owner``.
            passphrase: Master passphrase.

        Returns:
            VaultListing with opened ``items`` and ``failures`` keyed by id.
        """
        listing = VaultListing()
        fingerprint = self._fingerprint(passphrase)
        for record in records:
            try:
                plain = self._open(record, passphrase, fingerprint)
            except DecryptionFailed as err:
                listing.failures[record.id or ""] = err
                logger.warning(
                    "Unable to open vault record id=%s for owner=%s",
                    record.id, self._owner_id,
                )
                continue
            listing.items.append((record, plain))
        if listing.failures:
            logger.info(
                "Vault listing for owner=%s: %d opened, %d failed",
                self._owner_id, len(listing.items), len(listing.failures),
            )
        return listing

    async def load(self, passphrase: Passphrase) -> VaultListing:
        """Fetch all of this owner's records and open them, newest first."""
        records = await self._store.list_by_owner(self._owner_id)
        records = sorted(
            records,
            key=lambda r: r.created_at.timestamp() if r.created_at else 0.0,
            reverse=True,
        )
        return await asyncio.to_thread(self.list, records, passphrase)

    @staticmethod
    def search(opened: Iterable[OpenedRecord], query: str) -> Sequence[OpenedRecord]:
        """Filter opened records by a case-insensitive substring.

        Matches title, username, url and notes; never the secret, and never
        the ciphertext. An empty query returns every record.
        """
        if not query:
            return list(opened)
        return [item for item in opened if item[1].matches(query)]

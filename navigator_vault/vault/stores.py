"""
Vault Stores — Remote store adapters for sealed records.

Every adapter is owner-scoped: an id that does not belong to ``owner_id``
raises ``NotFound``, exactly as an unknown id does. Adapters only ever see
``EncryptedRecord`` values.

- ``MemoryVaultStore`` keeps records in process memory.
- ``HttpVaultStore`` talks to the vault REST routes (``/api/vault``) with aiohttp.
"""
import uuid
import asyncio
import logging
from typing import Any, Optional, Protocol, runtime_checkable
from datetime import datetime, timezone

import aiohttp

from ..exceptions import DecryptionFailed, NotFound, VaultStoreError
from .records import EncryptedRecord

logger = logging.getLogger("navigator.vault")


@runtime_checkable
class VaultStore(Protocol):
    """Durable CRUD of sealed records, scoped by owner."""

    async def create(self, owner_id: str, record: EncryptedRecord) -> str:
        ...

    async def update(
        self, owner_id: str, record_id: str, record: EncryptedRecord
    ) -> None:
        ...

    async def delete(self, owner_id: str, record_id: str) -> None:
        ...

    async def list_by_owner(self, owner_id: str) -> list[EncryptedRecord]:
        ...


class MemoryVaultStore:
    """In-process store; each write swaps the whole record at once."""

    def __init__(self):
        self._records: dict[str, EncryptedRecord] = {}
        self._lock = asyncio.Lock()

    def _owned(self, owner_id: str, record_id: str) -> EncryptedRecord:
        current = self._records.get(record_id)
        if current is None or current.owner_id != owner_id:
            raise NotFound(record_id)
        return current

    async def create(self, owner_id: str, record: EncryptedRecord) -> str:
        now = datetime.now(timezone.utc)
        record_id = uuid.uuid4().hex
        async with self._lock:
            self._records[record_id] = record.model_copy(
                update={
                    "id": record_id,
                    "owner_id": owner_id,
                    "created_at": now,
                    "updated_at": now,
                }
            )
        return record_id

    async def update(
        self, owner_id: str, record_id: str, record: EncryptedRecord
    ) -> None:
        async with self._lock:
            current = self._owned(owner_id, record_id)
            self._records[record_id] = current.model_copy(
                update={
                    "ciphertext": record.ciphertext,
                    "salt": record.salt,
                    "updated_at": datetime.now(timezone.utc),
                }
            )

    async def delete(self, owner_id: str, record_id: str) -> None:
        async with self._lock:
            self._owned(owner_id, record_id)
            del self._records[record_id]

    async def get(self, owner_id: str, record_id: str) -> EncryptedRecord:
        async with self._lock:
            return self._owned(owner_id, record_id)

    async def list_by_owner(self, owner_id: str) -> list[EncryptedRecord]:
        async with self._lock:
            return [r for r in self._records.values() if r.owner_id == owner_id]

    def __len__(self) -> int:
        return len(self._records)


class HttpVaultStore:
    """aiohttp client for the vault REST routes.

    Ownership is established by the session the client carries (cookies or
    headers); the server answers 404 for ids the caller does not own.

    Only ``ciphertextAndSalt`` is sent: no title or other plaintext field.
    Routes that still require a plaintext ``title`` and ``encryptedData``
    (the legacy vault service answers 400 without them) are not supported;
    the server must accept records carrying the sealed envelope alone.

    Args:
        base_url: URL of the collection route, e.g. ``https://host/api/vault``.
        session: aiohttp ClientSession carrying authentication.
    """

    def __init__(self, base_url: str, session: aiohttp.ClientSession):
        self._base_url = base_url.rstrip("/")
        self._session = session

    def _item_url(self, record_id: str) -> str:
        return f"{self._base_url}/{record_id}"

    async def _check(
        self,
        response: aiohttp.ClientResponse,
        record_id: Optional[str] = None,
    ) -> Any:
        if response.status == 404:
            raise NotFound(record_id)
        if response.status >= 400:
            text = await response.text()
            raise VaultStoreError(
                f"Vault store error {response.status}: {text}"
            )
        return await response.json()

    async def create(self, owner_id: str, record: EncryptedRecord) -> str:
        payload = record.to_wire()
        payload["ownerId"] = owner_id
        async with self._session.post(self._base_url, json=payload) as response:
            body = await self._check(response)
        return str(body["id"])

    async def update(
        self, owner_id: str, record_id: str, record: EncryptedRecord
    ) -> None:
        payload = record.to_wire()
        payload["ownerId"] = owner_id
        async with self._session.put(
            self._item_url(record_id), json=payload
        ) as response:
            await self._check(response, record_id)

    async def delete(self, owner_id: str, record_id: str) -> None:
        async with self._session.delete(self._item_url(record_id)) as response:
            await self._check(response, record_id)

    async def list_by_owner(self, owner_id: str) -> list[EncryptedRecord]:
        async with self._session.get(
            self._base_url, params={"ownerId": owner_id}
        ) as response:
            body = await self._check(response)
        records = []
        for item in body.get("items", []):
            try:
                record = EncryptedRecord.from_wire(item)
            except DecryptionFailed:
                logger.error(
                    "Skipping malformed vault record id=%s for owner=%s",
                    item.get("id"), owner_id,
                )
                continue
            if not record.owner_id:
                record = record.model_copy(update={"owner_id": owner_id})
            elif record.owner_id != owner_id:
                continue
            records.append(record)
        return records

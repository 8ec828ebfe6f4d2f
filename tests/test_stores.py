"""
Tests for the remote store adapters.

HttpVaultStore runs against a small aiohttp application that mimics the
vault REST routes: the caller's identity comes from a request header and
ids owned by someone else answer 404.
"""
import uuid
from typing import Optional
import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from navigator_vault import NotFound, VaultStoreError
from navigator_vault.vault import (
    EncryptedRecord,
    HttpVaultStore,
    MemoryVaultStore,
    VaultSession,
    VaultStore,
)
from navigator_vault.vault.records import encode_envelope


def make_record(owner_id: str = "owner-1", blob: bytes = b"blob") -> EncryptedRecord:
    return EncryptedRecord(owner_id=owner_id, ciphertext=blob, salt=b"s" * 16)


def vault_app(received: Optional[list] = None) -> web.Application:
    items: dict[str, dict] = {}
    if received is None:
        received = []

    def owned(request: web.Request) -> dict:
        item = items.get(request.match_info["id"])
        if item is None or item["userId"] != request.headers["X-Owner"]:
            raise web.HTTPNotFound(text='{"error": "Vault item not found"}')
        return item

    async def list_items(request: web.Request) -> web.Response:
        owner = request.headers["X-Owner"]
        return web.json_response(
            {"items": [i for i in items.values() if i["userId"] == owner]}
        )

    async def create_item(request: web.Request) -> web.Response:
        if "X-Fail" in request.headers:
            raise web.HTTPInternalServerError(text='{"error": "Internal server error"}')
        body = await request.json()
        received.append(body)
        if not body.get("ciphertextAndSalt"):
            raise web.HTTPBadRequest(text='{"error": "Encrypted data is required"}')
        item_id = uuid.uuid4().hex
        items[item_id] = {
            "_id": item_id,
            "userId": request.headers["X-Owner"],
            "ciphertextAndSalt": body["ciphertextAndSalt"],
            "createdAt": "2024-05-01T10:00:00+00:00",
            "updatedAt": "2024-05-01T10:00:00+00:00",
        }
        return web.json_response({"id": item_id}, status=201)

    async def update_item(request: web.Request) -> web.Response:
        item = owned(request)
        body = await request.json()
        received.append(body)
        item["ciphertextAndSalt"] = body["ciphertextAndSalt"]
        return web.json_response({"message": "Vault item updated successfully"})

    async def delete_item(request: web.Request) -> web.Response:
        owned(request)
        del items[request.match_info["id"]]
        return web.json_response({"message": "Vault item deleted successfully"})

    app = web.Application()
    app.router.add_get("/api/vault", list_items)
    app.router.add_post("/api/vault", create_item)
    app.router.add_put("/api/vault/{id}", update_item)
    app.router.add_delete("/api/vault/{id}", delete_item)
    return app


@pytest_asyncio.fixture
async def http_server():
    async with test_utils.TestServer(vault_app()) as server:
        yield server


def client_for(owner: str) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(headers={"X-Owner": owner})


class TestMemoryVaultStore:
    """Tests for MemoryVaultStore."""

    def test_is_vault_store(self):
        assert isinstance(MemoryVaultStore(), VaultStore)

    @pytest.mark.asyncio
    async def test_create_and_list(self):
        store = MemoryVaultStore()
        record_id = await store.create("owner-1", make_record())
        records = await store.list_by_owner("owner-1")
        assert [r.id for r in records] == [record_id]
        assert records[0].created_at == records[0].updated_at
        assert await store.list_by_owner("owner-2") == []

    @pytest.mark.asyncio
    async def test_update_replaces_blob_and_salt(self):
        store = MemoryVaultStore()
        record_id = await store.create("owner-1", make_record())
        replacement = EncryptedRecord(owner_id="owner-1", ciphertext=b"new", salt=b"t" * 16)
        await store.update("owner-1", record_id, replacement)
        stored = await store.get("owner-1", record_id)
        assert (stored.ciphertext, stored.salt) == (b"new", b"t" * 16)
        assert stored.updated_at >= stored.created_at

    @pytest.mark.asyncio
    async def test_owner_mismatch_is_not_found(self):
        store = MemoryVaultStore()
        record_id = await store.create("owner-1", make_record())
        with pytest.raises(NotFound):
            await store.update("owner-2", record_id, make_record("owner-2"))
        with pytest.raises(NotFound):
            await store.delete("owner-2", record_id)
        with pytest.raises(NotFound):
            await store.get("owner-2", record_id)
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_delete(self):
        store = MemoryVaultStore()
        record_id = await store.create("owner-1", make_record())
        await store.delete("owner-1", record_id)
        assert len(store) == 0
        with pytest.raises(NotFound):
            await store.delete("owner-1", record_id)


class TestHttpVaultStore:
    """Tests for HttpVaultStore against the vault REST routes."""

    @pytest.mark.asyncio
    async def test_crud(self, http_server):
        async with client_for("owner-1") as client:
            store = HttpVaultStore(str(http_server.make_url("/api/vault")), client)
            assert isinstance(store, VaultStore)
            record_id = await store.create("owner-1", make_record())
            records = await store.list_by_owner("owner-1")
            assert [r.id for r in records] == [record_id]
            assert records[0].ciphertext == b"blob"
            assert records[0].owner_id == "owner-1"
            assert records[0].created_at is not None

            await store.update(
                "owner-1", record_id, make_record(blob=b"updated")
            )
            records = await store.list_by_owner("owner-1")
            assert records[0].ciphertext == b"updated"

            await store.delete("owner-1", record_id)
            assert await store.list_by_owner("owner-1") == []

    @pytest.mark.asyncio
    async def test_other_owner_not_found(self, http_server):
        async with client_for("owner-1") as first, \
                client_for("owner-2") as second:
            url = str(http_server.make_url("/api/vault"))
            record_id = await HttpVaultStore(url, first).create("owner-1", make_record())
            intruder = HttpVaultStore(url, second)
            with pytest.raises(NotFound):
                await intruder.update("owner-2", record_id, make_record("owner-2"))
            with pytest.raises(NotFound):
                await intruder.delete("owner-2", record_id)
            assert await intruder.list_by_owner("owner-2") == []

    @pytest.mark.asyncio
    async def test_server_error(self, http_server):
        async with aiohttp.ClientSession(
            headers={"X-Owner": "owner-1", "X-Fail": "1"}
        ) as client:
            store = HttpVaultStore(str(http_server.make_url("/api/vault")), client)
            with pytest.raises(VaultStoreError):
                await store.create("owner-1", make_record())

    @pytest.mark.asyncio
    async def test_session_over_http(self, http_server, config, bank_record):
        async with client_for("owner-1") as client:
            store = HttpVaultStore(str(http_server.make_url("/api/vault")), client)
            vault = VaultSession("owner-1", store, config=config)
            sealed = await vault.upsert(bank_record, "correct horse")
            listing = await vault.load("correct horse")
            assert listing.records == [bank_record]
            assert listing.items[0][0].id == sealed.id

    @pytest.mark.asyncio
    async def test_sends_only_sealed_envelope(self, config, bank_record):
        received = []
        async with test_utils.TestServer(vault_app(received)) as server:
            async with client_for("owner-1") as client:
                store = HttpVaultStore(str(server.make_url("/api/vault")), client)
                vault = VaultSession("owner-1", store, config=config)
                sealed = await vault.upsert(bank_record, "correct horse")
                await vault.upsert(bank_record, "correct horse", record_id=sealed.id)
        assert len(received) == 2
        for body in received:
            assert set(body) == {"id", "ownerId", "ciphertextAndSalt", "createdAt", "updatedAt"}
            assert "title" not in body
            assert "Bank" not in repr(body)

    @pytest.mark.asyncio
    async def test_null_owner_is_kept(self):
        async def list_items(request: web.Request) -> web.Response:
            return web.json_response({"items": [{
                "id": "abc",
                "ownerId": None,
                "ciphertextAndSalt": encode_envelope(b"blob", b"s" * 16),
            }]})

        app = web.Application()
        app.router.add_get("/api/vault", list_items)
        async with test_utils.TestServer(app) as server:
            async with client_for("owner-1") as client:
                store = HttpVaultStore(str(server.make_url("/api/vault")), client)
                records = await store.list_by_owner("owner-1")
        assert [r.id for r in records] == ["abc"]
        assert records[0].owner_id == "owner-1"

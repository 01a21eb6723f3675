"""
RefMan Backend — API Endpoint Tests
=====================================

What:  End-to-end HTTP behaviour through the FastAPI app.
How:   test_client (conftest) routes requests through ASGITransport with the
       database, item store and entry service overridden per test.

What we test:
    ✅ Status codes for batch creation (201 / 207 / 400)
    ✅ Error body shape and X-Request-ID correlation
    ✅ Keyword endpoints (201 vs 204, rename, blank keyword)
    ✅ Flat-file items, including 405 on /dump
    ✅ Utilities and health
"""

import httpx
import pytest

from refman.config import settings
from refman.services.metadata_service import MetadataService, get_metadata_service


class TestEntryRoutes:

    @pytest.mark.asyncio
    async def test_create_single_and_fetch(self, test_client, sample_record):
        response = await test_client.post("/api/entries", json=sample_record)

        assert response.status_code == 201
        body = response.json()
        assert body["failures"] == []
        entry_id = body["ids"][0]

        fetched = await test_client.get(f"/api/entries/{entry_id}")
        assert fetched.status_code == 200
        assert fetched.json()["label"] == "eloquent-js"
        assert fetched.json()["keywords"] == ["javascript", "programming"]

    @pytest.mark.asyncio
    async def test_partial_batch_is_207(self, test_client):
        response = await test_client.post(
            "/api/entries",
            json=[{"title": "ok"}, {"author": ["Doe, Jane"]}],
        )

        assert response.status_code == 207
        body = response.json()
        assert len(body["ids"]) == 1
        assert body["failures"][0]["index"] == 1

    @pytest.mark.asyncio
    async def test_nothing_created_is_400(self, test_client):
        response = await test_client.post("/api/entries", json=[{}])
        assert response.status_code == 400
        assert response.json()["ids"] == []

    @pytest.mark.asyncio
    async def test_not_found_error_body(self, test_client):
        response = await test_client.get("/api/entries/999", headers={"X-Request-ID": "trace-1"})

        assert response.status_code == 404
        assert response.headers["X-Request-ID"] == "trace-1"
        body = response.json()
        assert body["error"] == "not_found"
        assert body["request_id"] == "trace-1"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, test_client, sample_record):
        entry_id = (await test_client.post("/api/entries", json=sample_record)).json()["ids"][0]

        patched = await test_client.patch(f"/api/entries/{entry_id}", json={"year": None, "pages": 472})
        assert patched.status_code == 200
        assert "year" not in patched.json()
        assert patched.json()["pages"] == 472

        replaced = await test_client.put(f"/api/entries/{entry_id}", json={"title": "Only"})
        assert replaced.json() == {"id": entry_id, "title": "Only"}

        deleted = await test_client.delete(f"/api/entries/{entry_id}")
        assert deleted.status_code == 204
        assert (await test_client.get(f"/api/entries/{entry_id}")).status_code == 404

    @pytest.mark.asyncio
    async def test_list_dump_heads_and_ids(self, test_client):
        ids = (await test_client.post("/api/entries", json=[{"title": "A"}, {"title": "B"}])).json()["ids"]

        assert len((await test_client.get("/api/entries")).json()) == 2
        assert len((await test_client.get("/api/dump")).json()) == 2
        assert (await test_client.get("/api/entries/heads")).json() == [
            {"id": ids[0], "title": "A"},
            {"id": ids[1], "title": "B"},
        ]
        selected = await test_client.get("/api/entries", params={"id": [ids[1]]})
        assert selected.json() == [{"id": ids[1], "title": "B"}]

    @pytest.mark.asyncio
    async def test_search(self, test_client, sample_record):
        ids = (await test_client.post("/api/entries", json=[sample_record, {"title": "Other"}])).json()["ids"]

        response = await test_client.get("/api/search", params={"keyword": "javascript"})
        entry = (await test_client.get(f"/api/entries/{ids[0]}")).json()

        assert response.json() == [entry]
        assert entry["keywords"] == ["javascript", "programming"]

        empty = await test_client.get("/api/search")
        assert empty.status_code == 400
        assert empty.json()["error"] == "validation_error"


class TestKeywordRoutes:

    @pytest.mark.asyncio
    async def test_add_keywords_201_then_204(self, test_client):
        entry_id = (await test_client.post("/api/entries", json={"title": "A"})).json()["ids"][0]

        first = await test_client.patch(f"/api/keywords/{entry_id}", params={"keyword": ["x", "y"]})
        again = await test_client.patch(f"/api/keywords/{entry_id}", params={"keyword": "x"})

        assert first.status_code == 201
        assert first.json() == {"entry_id": entry_id, "inserted": 2}
        assert again.status_code == 204
        assert (await test_client.get(f"/api/keywords/{entry_id}")).json() == ["x", "y"]

    @pytest.mark.asyncio
    async def test_add_without_keywords_is_400(self, test_client):
        entry_id = (await test_client.post("/api/entries", json={"title": "A"})).json()["ids"][0]
        response = await test_client.patch(f"/api/keywords/{entry_id}")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_rename(self, test_client):
        await test_client.post(
            "/api/entries",
            json=[{"title": "A", "keywords": ["js"]}, {"title": "B", "keywords": ["js", "javascript"]}],
        )

        response = await test_client.patch("/api/keywords/rename", params={"from": "js", "to": "javascript"})

        assert response.status_code == 200
        assert response.json() == {"updated": 1}
        assert (await test_client.get("/api/keywords")).json() == ["javascript"]

        nothing = await test_client.patch("/api/keywords/rename", params={"from": "js", "to": "javascript"})
        assert nothing.status_code == 204

        missing = await test_client.patch("/api/keywords/rename", params={"from": "js"})
        assert missing.status_code == 400

    @pytest.mark.asyncio
    async def test_replace_and_delete(self, test_client):
        entry_id = (await test_client.post("/api/entries", json={"title": "A", "keywords": ["a"]})).json()["ids"][0]

        replaced = await test_client.put(f"/api/keywords/{entry_id}", params={"keyword": ["b", "c"]})
        assert replaced.json() == ["b", "c"]

        blank = await test_client.delete(f"/api/keywords/{entry_id}", params={"keyword": ""})
        assert blank.status_code == 400

        one = await test_client.delete(f"/api/keywords/{entry_id}", params={"keyword": "b"})
        assert one.status_code == 204
        assert (await test_client.get(f"/api/keywords/{entry_id}")).json() == ["c"]

        everything = await test_client.delete(f"/api/keywords/{entry_id}")
        assert everything.status_code == 204
        assert (await test_client.get(f"/api/keywords/{entry_id}")).json() == []

    @pytest.mark.asyncio
    async def test_prune(self, test_client):
        response = await test_client.delete("/api/keywords/prune")
        assert response.status_code == 204


class TestItemRoutes:

    @pytest.mark.asyncio
    async def test_item_lifecycle(self, test_client):
        created = await test_client.post("/api/v0/items", json={"id": "sicp", "title": "SICP"})
        assert created.status_code == 201
        assert created.json() == {"message": "item created", "id": "sicp"}

        duplicate = await test_client.post("/api/v0/items", json={"id": "sicp"})
        assert duplicate.status_code == 409

        assert (await test_client.get("/api/v0/items")).json() == [{"id": "sicp", "title": "SICP"}]
        assert (await test_client.get("/api/v0/items/dump")).json() == [{"id": "sicp", "title": "SICP"}]

        replaced = await test_client.put("/api/v0/items/sicp", json={"id": "sicp", "title": "2nd ed."})
        assert replaced.status_code == 200
        assert (await test_client.get("/api/v0/items/sicp")).json()["title"] == "2nd ed."

        mismatch = await test_client.put("/api/v0/items/sicp", json={"id": "other"})
        assert mismatch.status_code == 400

        deleted = await test_client.delete("/api/v0/items/sicp")
        assert deleted.status_code == 204
        assert (await test_client.get("/api/v0/items/sicp")).status_code == 404

    @pytest.mark.asyncio
    async def test_dump_rejects_other_methods(self, test_client):
        assert (await test_client.put("/api/v0/items/dump", json={"id": "dump"})).status_code == 405
        assert (await test_client.delete("/api/v0/items/dump")).status_code == 405

    @pytest.mark.asyncio
    async def test_corrupt_file_is_500(self, test_client, item_store):
        (item_store.root / "bad.json").write_text("{oops", encoding="utf-8")

        response = await test_client.get("/api/v0/items/dump")

        assert response.status_code == 500
        assert response.json()["error"] == "server_error"
        assert response.json()["message"] == "bad file in db"


class TestUtilityRoutes:

    @pytest.mark.asyncio
    async def test_metadata(self, test_client):
        from refman.main import app

        html = '<html><head><meta property="og:title" content="Hello"></head></html>'
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=html))
        app.dependency_overrides[get_metadata_service] = lambda: MetadataService(transport=transport)

        response = await test_client.get("/api/utils/metadata", params={"url": "https://example.org"})

        assert response.status_code == 200
        assert response.json()["title"] == "Hello"

    @pytest.mark.asyncio
    async def test_metadata_without_url_is_400(self, test_client):
        response = await test_client.get("/api/utils/metadata")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_archive(self, test_client, item_store, monkeypatch):
        monkeypatch.setattr(settings, "storage_backend", "json")
        await item_store.create_item({"id": "a"})

        response = await test_client.get("/api/utils/archive")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/gzip"
        assert "attachment" in response.headers["content-disposition"]

    @pytest.mark.asyncio
    async def test_archive_on_sqlite_backend_is_400(self, test_client, monkeypatch):
        monkeypatch.setattr(settings, "storage_backend", "sqlite")
        response = await test_client.get("/api/utils/archive")
        assert response.status_code == 400


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["json_storage"] == "available"

import pytest
from unittest.mock import patch
from httpx import AsyncClient
from main import Bookmark


@pytest.mark.asyncio
async def test_bookmarks_empty(client: AsyncClient):
    response = await client.get("/api/bookmarks", params={"type": "vn"})
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_add_and_list_bookmarks(client: AsyncClient):
    for vn_id in ("v17", "v4", "v17"):
        response = await client.post("/api/bookmarks", params={"type": "vn", "id": vn_id})
        assert response.status_code == 200
        assert response.json() == {"success": True}

    response = await client.get("/api/bookmarks", params={"type": "vn"})
    assert response.json() == ["v17", "v4"]

    # kinds are kept apart
    response = await client.get("/api/bookmarks", params={"type": "char"})
    assert response.json() == []


@pytest.mark.asyncio
async def test_type_defaults_to_vn(client: AsyncClient):
    await client.post("/api/bookmarks", params={"id": "v2"})
    response = await client.get("/api/bookmarks", params={"type": "vn"})
    assert response.json() == ["v2"]


@pytest.mark.asyncio
async def test_remove_bookmark(client: AsyncClient):
    await client.post("/api/bookmarks", params={"type": "char", "id": "c5"})
    await client.post("/api/bookmarks", params={"type": "char", "id": "c6"})

    response = await client.delete("/api/bookmarks", params={"type": "char", "id": "c5"})
    assert response.status_code == 200
    assert response.json() == {"success": True}

    response = await client.get("/api/bookmarks", params={"type": "char"})
    assert response.json() == ["c6"]


@pytest.mark.asyncio
async def test_missing_id_is_rejected(client: AsyncClient):
    response = await client.post("/api/bookmarks", params={"type": "vn"})
    assert response.status_code == 400
    assert response.json() == {"error": "ID is required"}

    response = await client.delete("/api/bookmarks", params={"type": "vn", "id": "  "})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_type_is_rejected(client: AsyncClient):
    response = await client.get("/api/bookmarks", params={"type": "producer"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_legacy_members_are_normalised(client: AsyncClient, session_factory):
    async with session_factory() as db:
        db.add(Bookmark(kind="vn", item_id='["v24"]', created_at="2024-01-01T00:00:00"))
        db.add(Bookmark(kind="vn", item_id="v24", created_at="2024-01-02T00:00:00"))
        db.add(Bookmark(kind="vn", item_id="v3", created_at="2024-01-03T00:00:00"))
        await db.commit()

    response = await client.get("/api/bookmarks", params={"type": "vn"})
    assert response.json() == ["v24", "v3"]

    # removing the clean id also drops the legacy member
    await client.delete("/api/bookmarks", params={"type": "vn", "id": "v24"})
    response = await client.get("/api/bookmarks", params={"type": "vn"})
    assert response.json() == ["v3"]


@pytest.mark.asyncio
async def test_storage_failure_returns_500(client: AsyncClient):
    with patch("main._add_bookmark", side_effect=RuntimeError("disk full")):
        response = await client.post("/api/bookmarks", params={"type": "vn", "id": "v1"})
    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error"}

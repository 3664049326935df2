"""HTTP tests for /api/posts."""

import pytest
from httpx import AsyncClient

from volvox.services.posts import service as service_module


def _form(title="Post", **extra):
    data = {"title": title, "description": f"{title} description"}
    data.update(extra)
    return data


def _image(name="cover.png"):
    return ("image", (name, b"\x89PNG-bytes", "image/png"))


async def _create(client: AsyncClient, title: str, **extra):
    data = _form(title, **extra)
    data.setdefault("externalUrl", f"https://example.com/{title}")
    response = await client.post("/api/posts", data=data, files=[_image()])
    assert response.status_code == 201, response.text
    return response.json()


async def _titles(client: AsyncClient) -> list[str]:
    response = await client.get("/api/posts")
    return [p["title"] for p in response.json()["posts"]]


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_with_url_returns_camel_case(self, client: AsyncClient):
        body = await _create(client, "First")
        assert body["title"] == "First"
        assert body["fileUrl"] == "https://example.com/First"
        assert body["isExternalLink"] is True
        assert body["contentFileName"] is None
        assert body["imageUrl"].startswith("http://test/blobs/post_images/")
        assert body["imageFileName"].endswith("-cover.png")
        assert body["order"] == 0
        assert body["position"] == 0

    @pytest.mark.asyncio
    async def test_create_with_file(self, client: AsyncClient):
        response = await client.post(
            "/api/posts",
            data=_form("Doc", contentType="file"),
            files=[_image(), ("contentFile", ("paper.pdf", b"%PDF-1.7", "application/pdf"))],
        )
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["isExternalLink"] is False
        assert body["contentFileName"].endswith("-paper.pdf")
        assert body["fileUrl"].startswith("http://test/blobs/post_files/")

    @pytest.mark.asyncio
    async def test_create_at_position(self, client: AsyncClient):
        await _create(client, "A")
        await _create(client, "B")
        body = await _create(client, "C", targetPosition="0")
        assert body["order"] == 0
        assert await _titles(client) == ["C", "A", "B"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data, files",
        [
            ({"description": "d", "externalUrl": "https://e.com"}, [_image()]),
            (_form("T", externalUrl="https://e.com"), []),
            (_form("T"), [_image()]),
            (_form("T", externalUrl="nope"), [_image()]),
            (_form("T", contentType="url"), [_image()]),
            (_form("T", contentType="video", externalUrl="https://e.com"), [_image()]),
            (_form("T", contentType="file", externalUrl="https://e.com"), [_image()]),
            (_form("T", externalUrl="https://e.com", targetPosition="3"), [_image()]),
        ],
    )
    async def test_invalid_submissions_are_rejected(self, client: AsyncClient, data, files):
        response = await client.post("/api/posts", data=data, files=files or None)
        assert response.status_code == 422
        assert (await client.get("/api/posts")).json()["posts"] == []

    @pytest.mark.asyncio
    async def test_file_and_url_together_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/posts",
            data=_form("T", externalUrl="https://e.com"),
            files=[_image(), ("contentFile", ("a.pdf", b"%PDF", "application/pdf"))],
        )
        assert response.status_code == 422
        assert "not both" in response.json()["detail"]


class TestReadUpdateDelete:

    @pytest.mark.asyncio
    async def test_list_flags_consistency(self, client: AsyncClient):
        await _create(client, "A")
        await _create(client, "B")
        body = (await client.get("/api/posts")).json()
        assert body["orderConsistent"] is True
        assert [p["position"] for p in body["posts"]] == [0, 1]

    @pytest.mark.asyncio
    async def test_get_one(self, client: AsyncClient):
        await _create(client, "A")
        b = await _create(client, "B")
        response = await client.get(f"/api/posts/{b['id']}")
        assert response.status_code == 200
        assert response.json()["position"] == 1

    @pytest.mark.asyncio
    async def test_get_missing_is_404(self, client: AsyncClient):
        response = await client.get("/api/posts/does-not-exist")
        assert response.status_code == 404
        assert response.json()["detail"] == "Post not found"

    @pytest.mark.asyncio
    async def test_update_fields_and_move(self, client: AsyncClient):
        a = await _create(client, "A")
        await _create(client, "B")
        await _create(client, "C")
        response = await client.put(
            f"/api/posts/{a['id']}",
            data={"title": "A2", "description": "moved", "targetPosition": "2"},
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert (body["title"], body["order"]) == ("A2", 2)
        assert body["imageUrl"] == a["imageUrl"]
        assert body["fileUrl"] == a["fileUrl"]
        assert await _titles(client) == ["B", "C", "A2"]

    @pytest.mark.asyncio
    async def test_update_switches_to_file(self, client: AsyncClient):
        a = await _create(client, "A")
        response = await client.put(
            f"/api/posts/{a['id']}",
            data={"title": "A", "description": "d", "contentType": "file"},
            files=[("contentFile", ("notes.txt", b"hello", "text/plain"))],
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["isExternalLink"] is False
        assert body["contentFileName"].endswith("-notes.txt")

    @pytest.mark.asyncio
    async def test_update_missing_is_404(self, client: AsyncClient):
        response = await client.put("/api/posts/ghost", data={"title": "x", "description": "y"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update_position_out_of_range(self, client: AsyncClient):
        a = await _create(client, "A")
        response = await client.put(
            f"/api/posts/{a['id']}",
            data={"title": "A", "description": "d", "targetPosition": "1"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_resequences(self, client: AsyncClient):
        await _create(client, "A")
        b = await _create(client, "B")
        await _create(client, "C")
        response = await client.delete(f"/api/posts/{b['id']}")
        assert response.json() == {"deleted": True, "id": b["id"]}
        body = (await client.get("/api/posts")).json()
        assert [(p["title"], p["order"]) for p in body["posts"]] == [("A", 0), ("C", 1)]

    @pytest.mark.asyncio
    async def test_delete_missing_is_404(self, client: AsyncClient):
        response = await client.delete("/api/posts/ghost")
        assert response.status_code == 404


class TestResequenceAndGate:

    @pytest.mark.asyncio
    async def test_resequence_repairs_legacy_ranks(self, client: AsyncClient, record_store):
        await record_store.create("posts", {"title": "x", "description": "d", "order": 5})
        await record_store.create("posts", {"title": "y", "description": "d"})
        assert (await client.get("/api/posts")).json()["orderConsistent"] is False

        response = await client.post("/api/posts/resequence")
        assert response.status_code == 200
        assert [c["order"] for c in response.json()["changes"]] == [0, 1]
        assert (await client.get("/api/posts")).json()["orderConsistent"] is True

    @pytest.mark.asyncio
    async def test_busy_submission_is_409(self, client: AsyncClient):
        async with service_module._submit_lock:
            response = await client.post("/api/posts/resequence")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert "status" in response.json()

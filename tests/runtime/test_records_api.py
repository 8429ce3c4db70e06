"""HTTP tests for record CRUD, filtering and schema validation."""

from __future__ import annotations

from collections.abc import AsyncIterator

from httpx import AsyncClient


async def test_register_login_crud_scenario(client: AsyncClient, admin: dict[str, str]) -> None:
    """register -> login(admin) -> create -> list -> delete -> 404."""
    resp = await client.post("/c/t", json={"a": 1}, headers=admin)
    assert resp.status_code == 201
    record = resp.json()
    assert record["a"] == 1
    record_id = record["id"]
    assert record_id

    resp = await client.get("/c/t", headers=admin)
    assert resp.status_code == 200
    assert resp.json() == [record]

    resp = await client.delete(f"/c/t/{record_id}", headers=admin)
    assert resp.status_code == 204

    resp = await client.get(f"/c/t/{record_id}", headers=admin)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Record not found"}


async def test_delete_twice_is_404(client: AsyncClient, admin: dict[str, str]) -> None:
    record_id = (await client.post("/c/t", json={}, headers=admin)).json()["id"]

    assert (await client.delete(f"/c/t/{record_id}", headers=admin)).status_code == 204
    for _ in range(3):
        assert (await client.delete(f"/c/t/{record_id}", headers=admin)).status_code == 404


async def test_read_back_equals_created(client: AsyncClient, admin: dict[str, str]) -> None:
    payload = {"title": "write docs", "tags": ["a", "b"], "meta": {"x": 1.5}, "done": False}
    created = (await client.post("/c/t", json=payload, headers=admin)).json()

    resp = await client.get(f"/c/t/{created['id']}", headers=admin)
    assert resp.json() == created


async def test_put_replaces_and_patch_merges(client: AsyncClient, admin: dict[str, str]) -> None:
    created = (await client.post("/c/t", json={"title": "a", "done": False}, headers=admin)).json()
    record_id = created["id"]

    resp = await client.patch(f"/c/t/{record_id}", json={"done": True}, headers=admin)
    assert resp.status_code == 200
    assert resp.json() == {"id": record_id, "title": "a", "done": True}

    resp = await client.put(f"/c/t/{record_id}", json={"title": "b"}, headers=admin)
    assert resp.status_code == 200
    assert resp.json() == {"id": record_id, "title": "b"}

    assert (await client.put("/c/t/missing", json={}, headers=admin)).status_code == 404
    assert (await client.patch("/c/t/missing", json={}, headers=admin)).status_code == 404


async def test_schema_violation_names_field(client: AsyncClient, admin: dict[str, str]) -> None:
    resp = await client.post("/c/people", json={"_init": True, "_schema": {"age": "Number"}}, headers=admin)
    assert resp.status_code == 201
    assert resp.json()["_schema"] == {"age": "Number"}

    resp = await client.post("/c/people", json={"age": "x"}, headers=admin)
    assert resp.status_code == 400
    assert "age" in resp.json()["error"]

    resp = await client.get("/c/people", headers=admin)
    assert resp.json() == []


async def test_schema_only_body_initialises_table(client: AsyncClient, admin: dict[str, str]) -> None:
    resp = await client.post("/c/people", json={"_schema": {"name": "String"}}, headers=admin)
    assert resp.status_code == 201
    assert resp.json()["message"] == "Table initialized"

    assert (await client.get("/c/people", headers=admin)).json() == []


async def test_schema_and_fields_in_one_body(client: AsyncClient, admin: dict[str, str]) -> None:
    resp = await client.post("/c/people", json={"_schema": {"age": "Number"}, "age": 4}, headers=admin)
    assert resp.status_code == 201
    assert resp.json()["age"] == 4
    assert "_schema" not in resp.json()


async def test_filters_and_pagination(client: AsyncClient, admin: dict[str, str]) -> None:
    for i in range(12):
        await client.post("/c/items", json={"n": i, "kind": "even" if i % 2 == 0 else "odd"}, headers=admin)

    resp = await client.get("/c/items", params={"kind": "odd"}, headers=admin)
    assert [r["n"] for r in resp.json()] == [1, 3, 5, 7, 9, 11]

    resp = await client.get("/c/items", params={"kind": "odd", "n": "5"}, headers=admin)
    assert [r["n"] for r in resp.json()] == [5]

    resp = await client.get("/c/items", params={"page": "2", "limit": "5"}, headers=admin)
    body = resp.json()
    assert body["page"] == 2
    assert body["limit"] == 5
    assert body["total"] == 12
    assert [r["n"] for r in body["data"]] == [5, 6, 7, 8, 9]

    resp = await client.get("/c/items", params={"kind": "even", "page": "1"}, headers=admin)
    body = resp.json()
    assert (body["limit"], body["total"]) == (10, 6)


async def test_missing_table_and_container(client: AsyncClient, admin: dict[str, str]) -> None:
    resp = await client.get("/nope/t", headers=admin)
    assert resp.status_code == 404

    await client.post("/c/t", json={}, headers=admin)
    resp = await client.get("/c/other", headers=admin)
    assert resp.status_code == 404
    assert "other" in resp.json()["error"]


async def test_client_primary_key(client: AsyncClient, admin: dict[str, str]) -> None:
    await client.post("/c/users", json={"_init": True, "_primaryKey": "handle", "_unique": ["email"]}, headers=admin)

    resp = await client.post("/c/users", json={"handle": "ada", "email": "ada@x"}, headers=admin)
    assert resp.status_code == 201
    assert resp.json() == {"handle": "ada", "email": "ada@x"}

    resp = await client.post("/c/users", json={"handle": "ada"}, headers=admin)
    assert resp.status_code == 400
    assert "must be unique" in resp.json()["error"]

    resp = await client.post("/c/users", json={"handle": "bob", "email": "ada@x"}, headers=admin)
    assert resp.status_code == 400
    assert "email" in resp.json()["error"]

    resp = await client.get("/c/users/ada", headers=admin)
    assert resp.json()["email"] == "ada@x"


async def test_client_primary_key_numeric_and_string_collide(client: AsyncClient, admin: dict[str, str]) -> None:
    await client.post("/c/items", json={"_init": True, "_primaryKey": "sku"}, headers=admin)

    assert (await client.post("/c/items", json={"sku": 1}, headers=admin)).status_code == 201
    resp = await client.post("/c/items", json={"sku": "1"}, headers=admin)
    assert resp.status_code == 400
    assert "must be unique" in resp.json()["error"]

    assert (await client.get("/c/items", headers=admin)).json() == [{"sku": 1}]


async def test_malformed_json_is_400(client: AsyncClient, admin: dict[str, str]) -> None:
    resp = await client.post(
        "/c/t",
        content=b"{not json",
        headers={**admin, "content-type": "application/json"},
    )
    assert resp.status_code == 400
    assert "error" in resp.json()


async def test_oversized_body_is_413(client: AsyncClient, admin: dict[str, str], context) -> None:
    blob = "x" * (context.settings.max_body_bytes + 1)
    resp = await client.post("/c/t", json={"blob": blob}, headers=admin)
    assert resp.status_code == 413


async def test_oversized_chunked_body_is_413(client: AsyncClient, admin: dict[str, str], context) -> None:
    chunk = b"x" * 65536
    count = context.settings.max_body_bytes // len(chunk) + 2

    async def body() -> AsyncIterator[bytes]:
        for _ in range(count):
            yield chunk

    resp = await client.post("/c/t", content=body(), headers={**admin, "content-type": "application/json"})
    assert resp.status_code == 413
    assert "exceeds" in resp.json()["error"]
    assert (await client.get("/c/t", headers=admin)).status_code == 404


async def test_chunked_body_within_limit(client: AsyncClient, admin: dict[str, str]) -> None:
    async def body() -> AsyncIterator[bytes]:
        yield b'{"title": '
        yield b'"streamed"}'

    resp = await client.post("/c/t", content=body(), headers={**admin, "content-type": "application/json"})
    assert resp.status_code == 201
    assert resp.json()["title"] == "streamed"


async def test_html_error_page_for_browsers(client: AsyncClient, admin: dict[str, str]) -> None:
    resp = await client.get("/c/t/missing", headers={**admin, "accept": "text/html,application/xhtml+xml"})
    assert resp.status_code == 404
    assert resp.headers["content-type"].startswith("text/html")
    assert "Container" in resp.text

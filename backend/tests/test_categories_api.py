async def test_category_crud(client, auth_headers):
    resp = await client.post(
        "/api/categories",
        json={"name": "Groceries", "type": "expense", "color": "#22aa44"},
        headers=auth_headers,
    )
    assert resp.status_code == 201
    category = resp.json()["data"]

    resp = await client.put(
        f"/api/categories/{category['id']}", json={"icon": "cart"}, headers=auth_headers
    )
    assert resp.json()["data"]["icon"] == "cart"

    resp = await client.get("/api/categories?type=expense", headers=auth_headers)
    assert [c["name"] for c in resp.json()["data"]] == ["Groceries"]

    resp = await client.delete(f"/api/categories/{category['id']}", headers=auth_headers)
    assert resp.status_code == 200
    resp = await client.get(f"/api/categories/{category['id']}", headers=auth_headers)
    assert resp.status_code == 404


async def test_name_unique_per_type(client, auth_headers):
    payload = {"name": "Gifts", "type": "expense"}
    await client.post("/api/categories", json=payload, headers=auth_headers)

    resp = await client.post("/api/categories", json=payload, headers=auth_headers)
    assert resp.status_code == 409

    resp = await client.post(
        "/api/categories", json={"name": "Gifts", "type": "income"}, headers=auth_headers
    )
    assert resp.status_code == 201


async def test_bad_color(client, auth_headers):
    resp = await client.post(
        "/api/categories",
        json={"name": "Fun", "type": "expense", "color": "red"},
        headers=auth_headers,
    )
    assert resp.status_code == 422


async def test_categories_are_private(client, auth_headers, register):
    resp = await client.post(
        "/api/categories", json={"name": "Rent", "type": "expense"}, headers=auth_headers
    )
    category_id = resp.json()["data"]["id"]
    bob = await register("bob@example.com")

    resp = await client.get(f"/api/categories/{category_id}", headers=bob)
    assert resp.status_code == 404
    resp = await client.get("/api/categories", headers=bob)
    assert resp.json()["data"] == []

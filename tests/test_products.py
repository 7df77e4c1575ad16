from datetime import datetime, timedelta

from bson import ObjectId


def create(client, files=None, **fields):
    data = {"name": "Croissant", "price": "120", "category": "Viennoiserie"}
    data.update(fields)
    return client.post("/api/products", data=data, files=files)


def test_create_product_splits_options(client):
    res = client.post("/api/products", data={"name": "Croissant", "price": "120", "options": "butter, chocolate"})
    assert res.status_code == 200
    product = res.json()["product"]
    assert product["options"] == ["butter", "chocolate"]
    assert product["available"] is True
    assert product["price"] == 120
    assert product["description"] == ""
    assert product["category"] == ""
    assert product["id"]


def test_options_drop_blank_entries(client):
    product = create(client, options=" almond ,, ,pistachio,").json()["product"]
    assert product["options"] == ["almond", "pistachio"]


def test_create_product_requires_name_and_price(client, db, assets):
    for data in ({"price": "120"}, {"name": "Croissant"}, {"name": "  ", "price": "120"}):
        res = client.post(
            "/api/products",
            data=data,
            files={"image": ("c.png", b"png", "image/png")},
        )
        assert res.status_code == 400
        assert res.json() == {"success": False, "message": "Name & price required"}
    assert db["product"].count_documents({}) == 0
    assert assets.saved == []


def test_create_product_rejects_non_numeric_price(client, db):
    res = create(client, price="one twenty")
    assert res.status_code == 400
    assert db["product"].count_documents({}) == 0


def test_create_product_with_image(client, assets):
    res = create(client, files={"image": ("croissant.jpeg", b"jpeg-bytes", "image/jpeg")})
    product = res.json()["product"]
    assert product["imageUrl"] == "https://assets.test/image_1.png"
    assert product["imagePublicId"] == "image_1"
    assert assets.saved == [("image", "croissant.jpeg", b"jpeg-bytes")]


def test_create_product_rejects_unsupported_image(client, db):
    res = create(client, files={"image": ("croissant.webp", b"riff", "image/webp")})
    assert res.status_code == 400
    assert db["product"].count_documents({}) == 0


def test_list_products_newest_first(client, db):
    now = datetime(2024, 5, 1, 9, 0)
    db["product"].insert_many([
        {"name": "Baguette", "createdAt": now - timedelta(hours=3)},
        {"name": "Eclair", "createdAt": now},
    ])
    body = client.get("/api/products").json()
    assert body["success"] is True
    assert [p["name"] for p in body["products"]] == ["Eclair", "Baguette"]


def test_get_product(client):
    product_id = create(client).json()["product"]["id"]
    res = client.get(f"/api/products/{product_id}")
    assert res.json()["product"]["name"] == "Croissant"
    assert client.get(f"/api/products/{ObjectId()}").status_code == 404
    assert client.get("/api/products/bogus").status_code == 404


def test_partial_update_changes_only_supplied_fields(client):
    product_id = create(client, description="Flaky", options="plain").json()["product"]["id"]
    res = client.put(f"/api/products/{product_id}", data={"price": "150"})
    assert res.status_code == 200
    product = client.get(f"/api/products/{product_id}").json()["product"]
    assert product["price"] == 150
    assert product["name"] == "Croissant"
    assert product["category"] == "Viennoiserie"
    assert product["description"] == "Flaky"
    assert product["options"] == ["plain"]
    assert product["available"] is True


def test_update_replaces_options_and_sets_availability(client):
    product_id = create(client, options="butter, chocolate").json()["product"]["id"]
    res = client.put(f"/api/products/{product_id}", data={"options": "almond", "available": "false"})
    product = res.json()["product"]
    assert product["options"] == ["almond"]
    assert product["available"] is False


def test_update_rejects_bad_values(client):
    product_id = create(client).json()["product"]["id"]
    assert client.put(f"/api/products/{product_id}", data={"price": "free"}).status_code == 400
    assert client.put(f"/api/products/{product_id}", data={"available": "maybe"}).status_code == 400
    assert client.put(f"/api/products/{product_id}", data={"name": " "}).status_code == 400


def test_new_image_deletes_previous_asset_once(client, assets):
    product_id = create(client, files={"image": ("a.png", b"a", "image/png")}).json()["product"]["id"]
    res = client.put(
        f"/api/products/{product_id}",
        files={"image": ("b.png", b"b", "image/png")},
    )
    product = res.json()["product"]
    assert product["imagePublicId"] == "image_2"
    assert product["imageUrl"] == "https://assets.test/image_2.png"
    assert assets.deleted == ["image_1"]


def test_update_without_new_image_keeps_asset(client, assets):
    product_id = create(client, files={"image": ("a.png", b"a", "image/png")}).json()["product"]["id"]
    client.put(f"/api/products/{product_id}", data={"name": "Pain au chocolat"})
    assert assets.deleted == []
    assert client.get(f"/api/products/{product_id}").json()["product"]["imagePublicId"] == "image_1"


def test_update_missing_product_is_not_found(client, assets):
    res = client.put(f"/api/products/{ObjectId()}", data={"price": "10"})
    assert res.status_code == 404
    assert res.json()["message"] == "Product not found"


def test_toggle_hold_twice_restores_availability(client):
    product_id = create(client).json()["product"]["id"]
    first = client.put(f"/api/products/{product_id}/toggle-hold").json()
    assert first == {"success": True, "available": False}
    assert client.get(f"/api/products/{product_id}").json()["product"]["available"] is False
    second = client.put(f"/api/products/{product_id}/toggle-hold").json()
    assert second == {"success": True, "available": True}
    assert client.put(f"/api/products/{ObjectId()}/toggle-hold").status_code == 404


def test_delete_product_removes_image(client, assets, db):
    product_id = create(client, files={"image": ("a.jpg", b"a", "image/jpeg")}).json()["product"]["id"]
    res = client.delete(f"/api/products/{product_id}")
    assert res.json() == {"success": True}
    assert assets.deleted == ["image_1"]
    assert db["product"].count_documents({}) == 0


def test_delete_missing_product_is_not_found(client):
    assert client.delete(f"/api/products/{ObjectId()}").status_code == 404
    assert client.delete("/api/products/nope").status_code == 404


def test_negative_price_is_rejected(client, db):
    res = create(client, price="-50")
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "price cannot be negative"}
    assert db["product"].count_documents({}) == 0

    product_id = create(client).json()["product"]["id"]
    assert client.put(f"/api/products/{product_id}", data={"price": "-1"}).status_code == 400
    assert client.get(f"/api/products/{product_id}").json()["product"]["price"] == 120


def test_image_stored_for_vanished_product_is_cleaned_up(client, assets, db):
    product_id = create(client).json()["product"]["id"]
    original_save = assets.save

    def save_then_lose_product(upload, fieldname):
        db["product"].delete_many({})
        return original_save(upload, fieldname)

    assets.save = save_then_lose_product
    res = client.put(f"/api/products/{product_id}", files={"image": ("b.png", b"b", "image/png")})
    assert res.status_code == 404
    assert assets.deleted == ["image_1"]

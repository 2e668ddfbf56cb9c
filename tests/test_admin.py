from bson import ObjectId

import relations


def _product_payload(**overrides):
    payload = {
        "title": "Emerald Ring",
        "description": "Green stone",
        "category": "jewellery",
        "sub_category": "diamond",
        "sub_sub_category": "ring",
        "variants": [{"modelno": "EM-1", "size": "M", "price": 5000, "discount": 4500, "quantity": 0}],
        "images": [{"url": f"https://img.example.com/em{i}.jpg", "public_id": f"em{i}"} for i in range(3)],
    }
    payload.update(overrides)
    return payload


def test_create_product(client, db, make_user, login):
    login(make_user(role="admin"))

    response = client.post("/admin/products", json=_product_payload())

    assert response.status_code == 201
    product = response.json()["product"]
    assert product["availability"] is False
    assert product["images"][0] == {"url": "https://img.example.com/em0.jpg", "public_id": "em0"}
    stored = db["product"].find_one({"_id": ObjectId(product["id"])})
    assert isinstance(stored["variants"][0]["_id"], ObjectId)
    assert stored["rating"] == 0


def test_create_product_rejects_bad_taxonomy_and_image_count(client, make_user, login):
    login(make_user(role="admin"))

    wrong_branch = client.post("/admin/products", json=_product_payload(sub_category="gold", sub_sub_category="anklet"))
    too_few = client.post("/admin/products", json=_product_payload(images=[{"url": "https://x/1.jpg"}]))
    over_discount = client.post(
        "/admin/products",
        json=_product_payload(variants=[{"modelno": "X", "size": "M", "price": 100, "discount": 200, "quantity": 1}]),
    )

    assert wrong_branch.status_code == 400
    assert too_few.status_code == 400
    assert over_discount.status_code == 400


def test_create_product_keeps_inline_images_without_cloudinary(client, db, make_user, login, monkeypatch):
    import media

    monkeypatch.setattr(media, "CLOUDINARY_CLOUD_NAME", None)
    login(make_user(role="admin"))
    images = [{"data": "aGVsbG8=", "content_type": "image/png"} for _ in range(3)]

    response = client.post("/admin/products", json=_product_payload(images=images))

    assert response.json()["product"]["images"][0] == "data:image/png;base64,aGVsbG8="
    stored = db["product"].find_one({"_id": ObjectId(response.json()["product"]["id"])})
    assert bytes(stored["images"][0]["data"]) == b"hello"


def test_edit_recomputes_availability_and_keeps_variant_ids(client, db, make_user, make_product, login):
    login(make_user(role="admin"))
    product = make_product()
    old_variant_id = product["variants"][0]["_id"]

    response = client.put(
        f"/admin/products/{product['_id']}",
        json={
            "title": "Renamed",
            "variants": [{"modelno": "SKU-0", "size": "M", "price": 1000, "quantity": 0, "quality": "4.5"}],
        },
    )

    assert response.status_code == 200
    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["title"] == "Renamed"
    assert stored["availability"] is False
    assert stored["rating"] == 4
    assert stored["variants"][0]["_id"] == old_variant_id
    assert stored["images"] == product["images"]


def test_edit_validates_merged_product(client, make_user, make_product, login):
    login(make_user(role="admin"))
    product = make_product()

    response = client.put(f"/admin/products/{product['_id']}", json={"sub_category": "platinum"})

    assert response.status_code == 400


def test_edit_rejects_wrong_image_count(client, make_user, make_product, login):
    login(make_user(role="admin"))
    product = make_product()

    response = client.put(f"/admin/products/{product['_id']}", json={"images": [{"url": "https://x/1.jpg"}]})

    assert response.status_code == 400


def test_delete_product_detaches_enquiries(client, db, make_user, make_product, login):
    buyer = make_user()
    doomed = make_product(title="Doomed")
    other = make_product(title="Other")
    relations.create_enquiry(db, buyer, "b@example.com", "123456", [{"product_id": str(doomed["_id"]), "quantity": 1}])
    mixed = relations.create_enquiry(db, buyer, "b@example.com", "123456", [
        {"product_id": str(doomed["_id"]), "quantity": 1},
        {"product_id": str(other["_id"]), "quantity": 1},
    ])
    login(make_user(role="admin"))

    response = client.delete(f"/admin/products/{doomed['_id']}")

    assert response.json()["enquiries_removed"] == 1
    assert db["product"].find_one({"_id": doomed["_id"]}) is None
    assert db["enquiry"].count_documents({}) == 1
    assert db["enquiry"].find_one({"_id": mixed["_id"]})["products"] == [{"product": other["_id"], "quantity": 1}]
    assert client.delete(f"/admin/products/{doomed['_id']}").status_code == 404


def test_admin_dashboard_search_and_categories(client, make_user, make_product, login):
    make_product(title="Gold Chain", sub_category="gold", sub_sub_category="necklace")
    make_product(title="Diamond Ring")
    login(make_user(role="admin"))

    body = client.get("/admin", params={"query": "chain"}).json()
    categories = client.get("/admin/categories").json()

    assert [p["title"] for p in body["products"]] == ["Gold Chain"]
    assert body["total_products"] == 1
    assert body["enquiry_count"] == 0
    assert categories["sub_categories"] == ["diamond", "gold"]


def test_super_admin_dashboard_sections(client, make_user, make_product, login):
    make_user()
    make_user(role="admin")
    make_product()
    login(make_user(role="super-admin"))

    body = client.get("/super-admin").json()

    assert body["users"]["total"] == 1
    assert body["admins"]["total"] == 1
    assert body["products"]["total"] == 1
    assert "images" not in body["products"]["items"][0]
    assert body["enquiries"]["total"] == 0
    assert body["search_query"] == ""


def test_role_update(client, db, make_user, login):
    target = make_user()
    login(make_user(role="super-admin"))

    promoted = client.put(f"/super-admin/users/{target['_id']}/role", json={"role": "admin"})
    invalid = client.put(f"/super-admin/users/{target['_id']}/role", json={"role": "super-admin"})

    assert promoted.status_code == 200
    assert db["user"].find_one({"_id": target["_id"]})["role"] == "admin"
    assert invalid.status_code == 400


def test_super_admins_are_protected(client, db, make_user, login):
    other = make_user(role="super-admin")
    login(make_user(role="super-admin"))

    demote = client.put(f"/super-admin/users/{other['_id']}/role", json={"role": "user"})
    delete = client.delete(f"/super-admin/users/{other['_id']}")

    assert demote.status_code == 403
    assert delete.status_code == 403
    assert 'token=""' not in delete.headers.get("set-cookie", "")
    assert db["user"].find_one({"_id": other["_id"]})["role"] == "super-admin"
    assert client.get("/super-admin").status_code == 200


def test_delete_user_removes_wishlist(client, db, make_user, make_product, login):
    target = make_user()
    product = make_product()
    relations.add_to_wishlist(db, target, str(product["_id"]))
    login(make_user(role="super-admin"))

    assert client.delete(f"/super-admin/users/{target['_id']}").status_code == 200
    assert db["user"].find_one({"_id": target["_id"]}) is None
    assert db["wishlist"].count_documents({"user": target["_id"]}) == 0


def test_list_users_filters_by_role(client, make_user, login):
    make_user(name="Plain Person")
    make_user(role="admin", name="Admin Person")
    login(make_user(role="super-admin"))

    body = client.get("/super-admin/users", params={"role": "admin"}).json()

    assert [u["name"] for u in body["users"]] == ["Admin Person"]
    assert body["total"] == 1

from bson import ObjectId


def test_wishlist_created_on_first_read(client, db, make_user, login):
    user = make_user()
    login(user)

    response = client.get("/wishlist")

    assert response.json() == {"success": True, "wishlist": []}
    assert db["wishlist"].count_documents({"user": user["_id"]}) == 1


def test_add_is_idempotent(client, db, make_user, make_product, login):
    user = make_user()
    product = make_product()
    login(user)

    first = client.post(f"/wishlist/add/{product['_id']}").json()
    second = client.post(f"/wishlist/add/{product['_id']}").json()

    assert first["added"] is True
    assert second["added"] is False
    assert len(db["wishlist"].find_one({"user": user["_id"]})["products"]) == 1
    assert client.get(f"/wishlist/check/{product['_id']}").json()["in_wishlist"] is True


def test_add_unknown_product(client, make_user, login):
    login(make_user())

    assert client.post(f"/wishlist/add/{ObjectId()}").status_code == 404


def test_remove(client, make_user, make_product, login):
    login(make_user())
    product = make_product()
    client.post(f"/wishlist/add/{product['_id']}")

    assert client.delete(f"/wishlist/remove/{product['_id']}").status_code == 200
    assert client.get(f"/wishlist/check/{product['_id']}").json()["in_wishlist"] is False


def test_read_prunes_deleted_products_for_good(client, db, make_user, make_product, login):
    user = make_user()
    kept = make_product(title="Kept")
    gone = make_product(title="Gone")
    login(user)
    client.post(f"/wishlist/add/{kept['_id']}")
    client.post(f"/wishlist/add/{gone['_id']}")
    db["product"].delete_one({"_id": gone["_id"]})

    first = client.get("/wishlist").json()["wishlist"]

    assert [p["title"] for p in first] == ["Kept"]
    stored = db["wishlist"].find_one({"user": user["_id"]})["products"]
    assert [e["product"] for e in stored] == [kept["_id"]]
    assert [p["title"] for p in client.get("/wishlist").json()["wishlist"]] == ["Kept"]

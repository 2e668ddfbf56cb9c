from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

import relations
from errors import ValidationFailed


def _enquiry(client, product, **overrides):
    payload = {
        "email": "buyer@example.com",
        "phone_number": "+919999999999",
        "verification_code": "123456",
        "products": [{"product_id": str(product["_id"]), "quantity": 2}],
    }
    payload.update(overrides)
    return client.post("/enquiries", json=payload)


def test_create_and_list_own_enquiries(client, make_user, make_product, login):
    login(make_user())
    product = make_product()

    created = _enquiry(client, product)

    assert created.status_code == 201
    assert created.json()["enquiry"]["status"] == "pending"
    mine = client.get("/enquiries/user").json()["enquiries"]
    assert len(mine) == 1
    assert mine[0]["products"][0]["quantity"] == 2
    assert mine[0]["products"][0]["product"]["title"] == "Diamond Ring"


def test_create_requires_verification_code(client, make_user, make_product, login):
    login(make_user())
    product = make_product()

    response = _enquiry(client, product, verification_code="")

    assert response.status_code == 400


def test_create_from_cart(client, db, make_user, make_product, login):
    user = make_user()
    product = make_product()
    login(user)
    client.post("/products/cart/add", json={"product_id": str(product["_id"]), "size": "M", "quantity": 2})

    response = _enquiry(client, product, products=[], from_cart=True)

    assert response.status_code == 201
    stored = db["enquiry"].find_one({"user": user["_id"]})
    assert stored["products"] == [{"product": product["_id"], "quantity": 2}]


def test_create_with_no_products(client, make_user, make_product, login):
    login(make_user())

    assert _enquiry(client, make_product(), products=[]).status_code == 400


def test_read_prunes_dangling_products_and_hides_empty_enquiries(client, db, make_user, make_product, login):
    user = make_user()
    kept = make_product(title="Kept")
    gone = make_product(title="Gone")
    lonely = make_product(title="Lonely")
    login(user)
    _enquiry(client, kept, products=[
        {"product_id": str(kept["_id"]), "quantity": 1},
        {"product_id": str(gone["_id"]), "quantity": 1},
    ])
    _enquiry(client, lonely)
    db["product"].delete_many({"_id": {"$in": [gone["_id"], lonely["_id"]]}})

    mine = client.get("/enquiries/user").json()["enquiries"]

    assert len(mine) == 1
    assert [p["product"]["title"] for p in mine[0]["products"]] == ["Kept"]
    for enquiry in db["enquiry"].find():
        assert gone["_id"] not in [e["product"] for e in enquiry["products"]]
        assert lonely["_id"] not in [e["product"] for e in enquiry["products"]]


def test_admin_listing_is_paginated(client, make_user, make_product, login):
    login(make_user())
    product = make_product()
    for _ in range(3):
        _enquiry(client, product)
    client.cookies.clear()
    login(make_user(role="admin"))

    body = client.get("/enquiries/all", params={"page": 1, "limit": 2}).json()

    assert body["total"] == 3
    assert len(body["enquiries"]) == 2
    assert body["has_more"] is True
    assert body["enquiries"][0]["user"]["email"].startswith("user")


def test_paging_counts_in_storage_and_repairs_only_the_page(db, make_user, make_product):
    user = make_user()
    kept = make_product(title="Kept")
    gone = make_product(title="Gone")
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ids = []
    for day, products in enumerate(([kept], [kept, gone], [kept], [])):
        ids.append(
            db["enquiry"].insert_one(
                {
                    "user": user["_id"],
                    "email": "buyer@example.com",
                    "phone_number": "+919999999999",
                    "products": [{"product": p["_id"], "quantity": 1} for p in products],
                    "status": "pending",
                    "created_at": base + timedelta(days=day),
                }
            ).inserted_id
        )
    db["product"].delete_one({"_id": gone["_id"]})

    first = relations.paginate_enquiries(db, {}, 1, 1)

    assert first["total"] == 3
    assert first["total_pages"] == 3
    assert [e["id"] for e in first["enquiries"]] == [str(ids[2])]
    assert len(db["enquiry"].find_one({"_id": ids[1]})["products"]) == 2
    assert relations.count_live_enquiries(db) == 3

    second = relations.paginate_enquiries(db, {}, 2, 1)

    assert [p["product"]["title"] for p in second["enquiries"][0]["products"]] == ["Kept"]
    assert len(db["enquiry"].find_one({"_id": ids[1]})["products"]) == 1


def test_plain_users_cannot_list_all(client, make_user, login):
    login(make_user())

    response = client.get("/enquiries/all")

    assert response.status_code == 403
    assert 'token=""' not in response.headers.get("set-cookie", "")


def test_status_update_and_delete(client, db, make_user, make_product, login):
    login(make_user())
    product = make_product()
    enquiry_id = _enquiry(client, product).json()["enquiry"]["id"]
    client.cookies.clear()
    login(make_user(role="super-admin"))

    bad = client.patch(f"/enquiries/{enquiry_id}/status", json={"status": "shipped"})
    good = client.patch(f"/enquiries/{enquiry_id}/status", json={"status": "contacted", "notes": " called back "})

    assert bad.status_code == 400
    assert good.status_code == 200
    stored = db["enquiry"].find_one({"_id": ObjectId(enquiry_id)})
    assert stored["status"] == "contacted"
    assert stored["notes"] == "called back"

    assert client.delete(f"/enquiries/{enquiry_id}").status_code == 200
    assert client.delete(f"/enquiries/{enquiry_id}").status_code == 404


def test_update_status_rejects_unknown_status(db):
    with pytest.raises(ValidationFailed):
        relations.update_enquiry_status(db, str(ObjectId()), "lost")


def test_detach_product_deletes_emptied_enquiries(db, make_user, make_product):
    user = make_user()
    a = make_product(title="A")
    b = make_product(title="B")
    both = relations.create_enquiry(db, user, "x@example.com", "123456", [
        {"product_id": str(a["_id"]), "quantity": 1},
        {"product_id": str(b["_id"]), "quantity": 1},
    ])
    only_a = relations.create_enquiry(db, user, "x@example.com", "123456", [{"product_id": str(a["_id"]), "quantity": 1}])

    removed = relations.detach_product(db, a["_id"])

    assert removed == 1
    assert db["enquiry"].find_one({"_id": only_a["_id"]}) is None
    assert db["enquiry"].find_one({"_id": both["_id"]})["products"] == [{"product": b["_id"], "quantity": 1}]

from bson import ObjectId

ADDRESS = {
    "name": "Asha",
    "phone_number": "+911234567890",
    "street": "1 MG Road",
    "city": "Bengaluru",
    "state": "KA",
    "country": "IN",
    "zip_code": "560001",
}


def _defaults(addresses):
    return [a["is_default"] for a in addresses]


def test_first_address_becomes_default(client, make_user, login):
    login(make_user())

    first = client.post("/account/addresses", json=ADDRESS).json()["addresses"]
    second = client.post("/account/addresses", json=dict(ADDRESS, city="Mysuru")).json()["addresses"]

    assert _defaults(first) == [True]
    assert _defaults(second) == [True, False]


def test_only_one_default_address(client, make_user, login):
    login(make_user())
    client.post("/account/addresses", json=ADDRESS)
    addresses = client.post("/account/addresses", json=dict(ADDRESS, is_default=True)).json()["addresses"]

    assert _defaults(addresses) == [False, True]

    first_id = addresses[0]["id"]
    addresses = client.put(f"/account/addresses/{first_id}/default").json()["addresses"]
    assert _defaults(addresses) == [True, False]


def test_deleting_default_promotes_first_remaining(client, make_user, login):
    login(make_user())
    client.post("/account/addresses", json=ADDRESS)
    client.post("/account/addresses", json=dict(ADDRESS, city="Mysuru"))
    addresses = client.post("/account/addresses", json=dict(ADDRESS, city="Udupi", is_default=True)).json()["addresses"]

    remaining = client.delete(f"/account/addresses/{addresses[2]['id']}").json()["addresses"]

    assert [a["city"] for a in remaining] == ["Bengaluru", "Mysuru"]
    assert _defaults(remaining) == [True, False]


def test_update_address(client, make_user, login):
    login(make_user())
    address_id = client.post("/account/addresses", json=ADDRESS).json()["addresses"][0]["id"]

    updated = client.put(f"/account/addresses/{address_id}", json=dict(ADDRESS, street="2 MG Road", is_default=True))

    assert updated.json()["addresses"][0]["street"] == "2 MG Road"
    assert client.put(f"/account/addresses/{ObjectId()}", json=ADDRESS).status_code == 404


def test_address_requires_all_fields(client, make_user, login):
    login(make_user())

    response = client.post("/account/addresses", json=dict(ADDRESS, city=""))

    assert response.status_code == 400
    assert "city" in response.json()["details"]["fields"]


def test_recently_viewed_dedupes_newest_first_and_caps(client, db, make_user, make_product, login):
    user = make_user()
    login(user)
    products = [make_product(title=f"P{i}") for i in range(22)]
    for product in products:
        client.post(f"/account/recently-viewed/{product['_id']}")
    client.post(f"/account/recently-viewed/{products[5]['_id']}")

    stored = db["user"].find_one({"_id": user["_id"]})["recently_viewed"]
    assert len(stored) == 20
    assert stored[0]["product"] == products[5]["_id"]
    assert [e["product"] for e in stored].count(products[5]["_id"]) == 1

    db["product"].delete_one({"_id": products[21]["_id"]})
    titles = [p["title"] for p in client.get("/account/recently-viewed").json()["recently_viewed"]]
    assert titles[0] == "P5"
    assert "P21" not in titles
    assert len(titles) == 19

    client.delete("/account/recently-viewed")
    assert client.get("/account/recently-viewed").json()["recently_viewed"] == []


def test_update_phone_must_be_unique(client, db, make_user, login):
    make_user(phone_number="+915555555555")
    user = make_user()
    login(user)

    taken = client.put("/account/phone", json={"phone_number": "+915555555555"})
    ok = client.put("/account/phone", json={"phone_number": "+916666666666"})

    assert taken.status_code == 400
    assert taken.json()["details"]["field"] == "phone_number"
    assert ok.status_code == 200
    stored = db["user"].find_one({"_id": user["_id"]})
    assert stored["phone_number"] == "+916666666666"
    assert stored["phone_verified"] is True


def test_orders(client, make_user, login):
    order_id = ObjectId()
    login(make_user(orders=[{"_id": order_id, "total": 100}]))

    assert client.get("/account/orders").json()["orders"][0]["id"] == str(order_id)
    assert client.get(f"/account/orders/{order_id}").json()["order"]["total"] == 100
    assert client.get(f"/account/orders/{ObjectId()}").status_code == 404

"""
HTTP tests for listing search, CRUD, image handling and messaging.
"""
import os

import pytest

LISTING_FORM = {
    "title": "Tractor",
    "location": "Nairobi",
    "category": "Tractors and Machinery",
    "description": "Good condition",
    "price": "5000",
}


def png(name="photo.png", payload=b"\x89PNG\r\n\x1a\nfake"):
    return ("images", (name, payload, "image/png"))


def upload_path(config, url):
    return os.path.join(config.UPLOAD_DIR, url.rsplit("/", 1)[-1])


@pytest.fixture
def seller(register):
    return register(name="Seller", email="seller@example.com")


@pytest.fixture
def buyer(register):
    return register(name="Buyer", email="buyer@example.com")


def test_create_requires_auth(client):
    resp = client.post("/api/listings", data=LISTING_FORM)
    assert resp.status_code == 401


def test_create_listing(client, seller):
    resp = client.post("/api/listings", data=LISTING_FORM, headers=seller["headers"])
    assert resp.status_code == 201
    listing = resp.json()
    assert listing["seller"]["_id"] == seller["id"]
    assert listing["title"] == "Tractor"
    assert listing["price"] == 5000
    assert listing["condition"] == "Used - Good"
    assert listing["isNegotiable"] is False
    assert listing["images"] == []
    assert listing["createdAt"]


def test_create_listing_negotiable_flag(client, seller, create_listing):
    assert create_listing(seller["headers"], isNegotiable="true")["isNegotiable"] is True
    assert create_listing(seller["headers"], isNegotiable="yes")["isNegotiable"] is False


def test_create_missing_fields(client, seller):
    form = dict(LISTING_FORM)
    del form["price"]
    resp = client.post("/api/listings", data=form, headers=seller["headers"])
    assert resp.status_code == 400
    assert resp.json()["detail"] == (
        "Missing required fields: title, location, category, description, and price are mandatory."
    )


@pytest.mark.parametrize("field,value", [
    ("title", "x" * 101),
    ("description", "x" * 1001),
    ("price", "-1"),
    ("price", "cheap"),
    ("category", "Cars"),
    ("condition", "Broken"),
])
def test_create_validation_errors(client, seller, db, field, value):
    form = dict(LISTING_FORM, **{field: value})
    resp = client.post("/api/listings", data=form, headers=seller["headers"])
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Validation Error:")
    assert client.get("/api/listings").json() == []


def test_create_with_images(client, config, seller):
    files = [png("front view.png"), png("back.png")]
    resp = client.post("/api/listings", data=LISTING_FORM, files=files, headers=seller["headers"])
    assert resp.status_code == 201
    images = resp.json()["images"]
    assert len(images) == 2
    assert all(url.startswith("http://testserver/uploads/") for url in images)
    assert "front_view-" in images[0]
    assert all(os.path.exists(upload_path(config, url)) for url in images)

    served = client.get(images[0].replace("http://testserver", ""))
    assert served.status_code == 200
    assert served.content == b"\x89PNG\r\n\x1a\nfake"


def test_create_rejects_non_images(client, config, seller):
    files = [("images", ("notes.txt", b"hello", "text/plain"))]
    resp = client.post("/api/listings", data=LISTING_FORM, files=files, headers=seller["headers"])
    assert resp.status_code == 400
    assert not os.path.exists(config.UPLOAD_DIR) or os.listdir(config.UPLOAD_DIR) == []


def test_create_rejects_more_than_five_images(client, seller):
    files = [png(f"{i}.png") for i in range(6)]
    resp = client.post("/api/listings", data=LISTING_FORM, files=files, headers=seller["headers"])
    assert resp.status_code == 400


def test_get_listing(client, seller, create_listing):
    listing = create_listing(seller["headers"])
    resp = client.get(f"/api/listings/{listing['_id']}")
    assert resp.status_code == 200
    assert resp.json()["seller"] == {
        "_id": seller["id"], "name": "Seller", "email": "seller@example.com", "phone": "0712345678",
    }
    assert client.get("/api/listings/missing").status_code == 404


def test_search_matches_title_description_or_location(client, seller, create_listing):
    create_listing(seller["headers"], title="Red Tractor", location="Eldoret")
    create_listing(seller["headers"], title="Drip kit", description="Saves WATER", category="Irrigation Systems")
    create_listing(seller["headers"], title="Maize seed", location="Nakuru", category="Crop Seeds")

    def titles(params):
        return sorted(item["title"] for item in client.get("/api/listings", params=params).json())

    assert titles({"search": "tractor"}) == ["Red Tractor"]
    assert titles({"search": "water"}) == ["Drip kit"]
    assert titles({"search": "NAKURU"}) == ["Maize seed"]
    assert titles({"search": "zzz"}) == []
    assert len(titles({})) == 3


def test_category_filter_is_exact(client, seller, create_listing):
    create_listing(seller["headers"], title="Urea", category="Fertilizers")
    create_listing(seller["headers"], title="Kale", category="Veggies")

    resp = client.get("/api/listings", params={"category": "Fertilizers"})
    assert [item["title"] for item in resp.json()] == ["Urea"]
    assert client.get("/api/listings", params={"category": "fertilizers"}).json() == []
    assert len(client.get("/api/listings", params={"category": ""}).json()) == 2


def test_price_range_and_sort(client, seller, create_listing):
    for price in (150, 120, 300, 100, 200, 50):
        create_listing(seller["headers"], title=f"Item {price}", price=price)

    resp = client.get("/api/listings", params={"sortBy": "priceAsc", "minPrice": "100", "maxPrice": "200"})
    assert resp.status_code == 200
    assert [item["price"] for item in resp.json()] == [100, 120, 150, 200]

    resp = client.get("/api/listings", params={"sortBy": "priceDesc", "minPrice": "120"})
    assert [item["price"] for item in resp.json()] == [300, 200, 150, 120]

    resp = client.get("/api/listings", params={"maxPrice": "100", "sortBy": "priceAsc"})
    assert [item["price"] for item in resp.json()] == [50, 100]


def test_invalid_price_bound_is_ignored(client, seller, create_listing):
    for price in (10, 20, 30):
        create_listing(seller["headers"], price=price)

    resp = client.get("/api/listings", params={"minPrice": "abc", "maxPrice": "20"})
    assert sorted(item["price"] for item in resp.json()) == [10, 20]
    assert len(client.get("/api/listings", params={"minPrice": "abc", "maxPrice": "xyz"}).json()) == 3


@pytest.mark.parametrize("sort_by", [None, "newest", "unknown"])
def test_default_sort_is_newest_first(client, seller, create_listing, sort_by):
    for name in ("first", "second", "third"):
        create_listing(seller["headers"], title=name)

    params = {"sortBy": sort_by} if sort_by else {}
    resp = client.get("/api/listings", params=params)
    assert [item["title"] for item in resp.json()] == ["third", "second", "first"]


def test_limit(client, seller, create_listing):
    for _ in range(4):
        create_listing(seller["headers"])

    assert len(client.get("/api/listings", params={"limit": "2"}).json()) == 2
    assert len(client.get("/api/listings", params={"limit": "0"}).json()) == 4
    assert len(client.get("/api/listings", params={"limit": "many"}).json()) == 4


def test_my_listings(client, seller, buyer, create_listing):
    create_listing(seller["headers"], title="Seller item")
    create_listing(buyer["headers"], title="Buyer item")

    resp = client.get("/api/listings/my", headers=seller["headers"])
    assert resp.status_code == 200
    assert [item["title"] for item in resp.json()] == ["Seller item"]
    assert client.get("/api/listings/my").status_code == 401


def test_update_listing(client, seller, create_listing):
    listing = create_listing(seller["headers"])
    resp = client.put(
        f"/api/listings/{listing['_id']}",
        data={"title": "Tractor (serviced)", "price": "4500", "isNegotiable": "true", "condition": "Used - Fair"},
        headers=seller["headers"],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Listing updated successfully"
    assert body["listing"]["title"] == "Tractor (serviced)"
    assert body["listing"]["price"] == 4500
    assert body["listing"]["isNegotiable"] is True
    assert body["listing"]["condition"] == "Used - Fair"
    assert body["listing"]["location"] == "Nairobi"


def test_update_validation_error(client, seller, create_listing):
    listing = create_listing(seller["headers"])
    resp = client.put(f"/api/listings/{listing['_id']}", data={"price": "-10"}, headers=seller["headers"])
    assert resp.status_code == 400
    assert client.get(f"/api/listings/{listing['_id']}").json()["price"] == 5000


def test_update_reconciles_images(client, config, seller, create_listing):
    listing = create_listing(seller["headers"], files=[png("a.png"), png("b.png"), png("c.png")])
    first, second, third = listing["images"]

    resp = client.put(
        f"/api/listings/{listing['_id']}",
        data={"existingImages": [third, first]},
        files=[("images", ("d.gif", b"GIF89a", "image/gif"))],
        headers=seller["headers"],
    )
    assert resp.status_code == 200
    images = resp.json()["listing"]["images"]
    assert images[:2] == [third, first]
    assert len(images) == 3
    assert "/uploads/d-" in images[2]

    assert not os.path.exists(upload_path(config, second))
    for url in images:
        assert os.path.exists(upload_path(config, url))


def test_update_without_existing_images_drops_all(client, config, seller, create_listing):
    listing = create_listing(seller["headers"], files=[png("a.png")])
    resp = client.put(f"/api/listings/{listing['_id']}", data={"title": "No photos"}, headers=seller["headers"])
    assert resp.status_code == 200
    assert resp.json()["listing"]["images"] == []
    assert not os.path.exists(upload_path(config, listing["images"][0]))


def test_non_owner_cannot_mutate(client, seller, buyer, create_listing):
    listing = create_listing(seller["headers"])
    url = f"/api/listings/{listing['_id']}"

    # Ownership is checked before the payload is looked at
    resp = client.put(url, data={"price": "-5", "category": "Nope"}, headers=buyer["headers"])
    assert resp.status_code == 403
    assert client.put(url, data={"title": "Mine now"}, headers=buyer["headers"]).status_code == 403
    assert client.delete(url, headers=buyer["headers"]).status_code == 403
    assert client.get(url).json()["title"] == "Tractor"


def test_mutating_missing_listing(client, seller):
    assert client.put("/api/listings/missing", data={"title": "x"}, headers=seller["headers"]).status_code == 404
    assert client.delete("/api/listings/missing", headers=seller["headers"]).status_code == 404


def test_mutation_requires_auth(client, seller, create_listing):
    listing = create_listing(seller["headers"])
    assert client.put(f"/api/listings/{listing['_id']}", data={"title": "x"}).status_code == 401
    assert client.delete(f"/api/listings/{listing['_id']}").status_code == 401


def test_delete_listing_removes_files(client, config, seller, create_listing):
    listing = create_listing(seller["headers"], files=[png("a.png"), png("b.png")])
    paths = [upload_path(config, url) for url in listing["images"]]
    assert all(os.path.exists(path) for path in paths)

    resp = client.delete(f"/api/listings/{listing['_id']}", headers=seller["headers"])
    assert resp.status_code == 200
    assert resp.json() == {"message": "Listing deleted successfully"}
    assert client.get(f"/api/listings/{listing['_id']}").status_code == 404
    assert not any(os.path.exists(path) for path in paths)


def test_delete_tolerates_missing_files(client, config, seller, create_listing):
    listing = create_listing(seller["headers"], files=[png("a.png")])
    os.remove(upload_path(config, listing["images"][0]))

    resp = client.delete(f"/api/listings/{listing['_id']}", headers=seller["headers"])
    assert resp.status_code == 200


def test_send_message(client, db, seller, buyer, create_listing):
    listing = create_listing(seller["headers"])
    resp = client.post(
        f"/api/listings/{listing['_id']}/message",
        json={"content": "  Is it still available?  "},
        headers=buyer["headers"],
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Message sent successfully!"
    data = body["data"]
    assert data["content"] == "Is it still available?"
    assert data["sender"]["_id"] == buyer["id"]
    assert data["recipient"]["_id"] == seller["id"]
    assert data["recipient"]["name"] == "Seller"
    assert data["listing"] == listing["_id"]
    assert db.count_messages(listing["_id"]) == 1


def test_cannot_message_own_listing(client, db, seller, create_listing):
    listing = create_listing(seller["headers"])
    resp = client.post(
        f"/api/listings/{listing['_id']}/message", json={"content": "hello me"}, headers=seller["headers"],
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "You cannot send a message to yourself about your own listing."
    assert db.count_messages() == 0


@pytest.mark.parametrize("payload", [{}, {"content": ""}, {"content": "    "}])
def test_message_requires_content(client, seller, buyer, create_listing, payload):
    listing = create_listing(seller["headers"])
    resp = client.post(f"/api/listings/{listing['_id']}/message", json=payload, headers=buyer["headers"])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Message content cannot be empty."


def test_message_too_long(client, seller, buyer, create_listing):
    listing = create_listing(seller["headers"])
    url = f"/api/listings/{listing['_id']}/message"
    assert client.post(url, json={"content": "x" * 501}, headers=buyer["headers"]).status_code == 400
    assert client.post(url, json={"content": "x" * 500}, headers=buyer["headers"]).status_code == 201


def test_message_unknown_listing(client, buyer):
    resp = client.post("/api/listings/missing/message", json={"content": "hi"}, headers=buyer["headers"])
    assert resp.status_code == 404


def test_message_requires_auth(client, seller, create_listing):
    listing = create_listing(seller["headers"])
    resp = client.post(f"/api/listings/{listing['_id']}/message", json={"content": "hi"})
    assert resp.status_code == 401

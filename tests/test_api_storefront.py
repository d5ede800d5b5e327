import pytest

from app.core.errors import PlatformUserError
from app.models.variant import ProductVariant
from app.services.reconciler import ReconcileMode, generate_for_product


@pytest.fixture
def product(db, make_product, size_color):
    product = make_product(attributes=list(size_color))
    generate_for_product(db, product, ReconcileMode.REPLACE)
    for variant in product.variants:
        variant.price = 25
        variant.stock_quantity = 3
    db.commit()
    return product


def _variant(db, key):
    return db.query(ProductVariant).filter(ProductVariant.combination_key == key).one()


def test_storefront_product_payload(client, product, size_color):
    size, color = size_color

    response = client.get("/api/v1/storefront/products/1")

    assert response.status_code == 200
    body = response.json()
    assert body["product"]["title"] == "Signet Ring"
    assert [a["name"] for a in body["attributes"]] == ["Size", "Color"]
    assert body["primary_attribute_id"] == color.id
    assert len(body["variants"]) == 6
    assert body["variants"][0]["options"] == {str(size.id): size.values[0].id, str(color.id): color.values[0].id}


def test_storefront_unknown_product(client):
    assert client.get("/api/v1/storefront/products/404").status_code == 404


def test_match_selection(client, db, product, size_color):
    size, color = size_color
    target = _variant(db, "Color:Blue|Size:L")

    response = client.post("/api/v1/storefront/products/1/match", json={
        "selection": {str(size.id): size.values[2].id, str(color.id): color.values[1].id},
    })

    body = response.json()
    assert body["matched"] is True
    assert body["variant"]["id"] == target.id
    assert body["in_stock"] is True


def test_partial_selection_does_not_match(client, product, size_color):
    size, _ = size_color
    response = client.post("/api/v1/storefront/products/1/match", json={"selection": {str(size.id): size.values[0].id}})
    assert response.json()["matched"] is False
    assert response.json()["variant"] is None


def test_add_variant_to_cart(client, db, product, shopify):
    variant = _variant(db, "Color:Red|Size:S")

    response = client.post("/api/v1/cart/add-variant", json={"variant_id": variant.id, "quantity": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["cartData"] == {"id": 1001, "quantity": 2, "properties": {"Size": "S", "Color": "Red"}}
    assert len(shopify.created) == 1


def test_add_variant_out_of_stock(client, db, product, shopify):
    variant = _variant(db, "Color:Red|Size:S")

    response = client.post("/api/v1/cart/add-variant", json={"variant_id": variant.id, "quantity": 4})

    assert response.status_code == 400
    assert response.json()["available"] == 3
    assert shopify.created == []


def test_add_variant_falls_back(client, db, product, shopify):
    variant = _variant(db, "Color:Blue|Size:M")
    shopify.fail_with = PlatformUserError("rejected", messages=["Option values already exist"])

    response = client.post("/api/v1/cart/add-variant", json={"variant_id": variant.id})

    assert response.status_code == 200
    body = response.json()
    assert (body["success"], body["fallback"]) == (False, True)
    assert body["variant"]["id"] == variant.id
    assert body["messages"] == ["Option values already exist"]


def test_add_unknown_variant(client, product):
    assert client.post("/api/v1/cart/add-variant", json={"variant_id": 9999}).status_code == 404


def test_checkout(client, db, product, shopify):
    variant = _variant(db, "Color:Blue|Size:M")

    response = client.post("/api/v1/cart/checkout", json={
        "items": [{"variant_id": variant.id, "quantity": 2}],
        "cart_items": [{"quantity": 1, "price": 1250, "product_title": "Gift Box"}],
    })

    assert response.status_code == 200
    assert response.json()["checkout_url"].endswith("/invoices/abc")
    lines = shopify.draft_orders[0]
    assert len(lines) == 2
    assert lines[0]["title"] == "Signet Ring - M / Blue"
    assert lines[0]["quantity"] == 2

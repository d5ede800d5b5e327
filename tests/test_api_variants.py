import inspect

from sqlalchemy.exc import SQLAlchemyError

from app.api.v1.endpoints import cart as cart_endpoints
from app.api.v1.endpoints import product as product_endpoints
from app.api.v1.endpoints import variant as variant_endpoints
from app.core.config import settings
from app.models.variant import ProductVariant
from app.services import reconciler

API = "/api/v1/variants/"


def _generate(client, headers, product, mode="modify", **extra):
    return client.post(f"{API}generate", json={"product_id": product.id, "mode": mode, **extra}, headers=headers)


def test_generate_lists_all_combinations(client, auth_headers, make_product, size_color):
    product = make_product(attributes=size_color)

    response = _generate(client, auth_headers, product)

    assert response.status_code == 200
    body = response.json()
    assert (body["created"], body["unchanged"], body["total"], body["mode"]) == (6, 0, 6, "modify")

    variants = client.get(API, params={"product_id": product.id}, headers=auth_headers).json()
    assert len(variants) == 6
    assert variants[0]["combination_key"] == "Color:Red|Size:S"
    assert [(o["attribute_name"], o["value"]) for o in variants[0]["options"]] == [("Size", "S"), ("Color", "Red")]


def test_generate_by_platform_id_and_selected_values(client, auth_headers, make_product, size_color):
    size, color = size_color
    product = make_product()
    selected = {str(size.id): [size.values[0].id], str(color.id): [v.id for v in color.values]}

    response = client.post(f"{API}generate", json={
        "platform_product_id": "1",
        "selected_values": selected,
    }, headers=auth_headers)

    assert response.json()["created"] == 2
    listed = client.get(API, params={"platform_product_id": product.shopify_product_id}, headers=auth_headers).json()
    assert sorted(v["combination_key"] for v in listed) == ["Color:Blue|Size:S", "Color:Red|Size:S"]


def test_generate_requires_exactly_one_product_ref(client, auth_headers, make_product, size_color):
    product = make_product(attributes=size_color)
    both = client.post(f"{API}generate", json={
        "product_id": product.id,
        "platform_product_id": product.shopify_product_id,
    }, headers=auth_headers)
    neither = client.post(f"{API}generate", json={}, headers=auth_headers)
    assert both.status_code == 400
    assert neither.status_code == 400


def test_merge_then_replace(client, auth_headers, make_product, size_color):
    product = make_product(attributes=size_color)
    _generate(client, auth_headers, product)

    merged = _generate(client, auth_headers, product).json()
    assert (merged["created"], merged["unchanged"]) == (0, 6)

    replaced = _generate(client, auth_headers, product, mode="scratch").json()
    assert (replaced["created"], replaced["removed"]) == (6, 6)


def test_create_single_variant(client, auth_headers, make_product, size_color):
    size, color = size_color
    product = make_product(attributes=size_color)
    combination = [
        {"attribute_id": color.id, "attribute_value_id": color.values[1].id},
        {"attribute_id": size.id, "attribute_value_id": size.values[2].id},
    ]

    created = client.post(API, json={
        "product_id": product.id, "combination": combination, "price": 49.5, "stock_quantity": 3,
    }, headers=auth_headers)

    assert created.status_code == 201
    assert created.json()["combination_key"] == "Color:Blue|Size:L"
    assert created.json()["price"] == 49.5

    again = client.post(API, json={"product_id": product.id, "combination": combination}, headers=auth_headers)
    assert again.status_code == 409


def test_bulk_update_reports_partial_failure(client, auth_headers, make_product, size_color):
    product = make_product(attributes=size_color)
    _generate(client, auth_headers, product)
    ids = [v["id"] for v in client.get(API, params={"product_id": product.id}, headers=auth_headers).json()]

    ok = client.put(API, json={"variants": [{"id": ids[0], "price": 20}, {"id": ids[1], "sku": "R-S-B"}]}, headers=auth_headers)
    assert ok.status_code == 200
    assert ok.json()["succeeded"] == 2

    partial = client.put(API, json={"variants": [{"id": ids[0], "stock_quantity": 4}, {"id": 9999, "price": 1}]}, headers=auth_headers)
    assert partial.status_code == 207
    assert partial.json()["partial"] is True
    assert partial.json()["errors"] == [{"id": 9999, "error": "Variant not found"}]

    failed = client.put(API, json={"variants": [{"id": ids[0], "price": -1}]}, headers=auth_headers)
    assert failed.status_code == 500
    assert failed.json()["success"] is False

    status = client.get(f"{API}{ids[0]}/status", headers=auth_headers).json()
    assert (status["price"], status["stock"], status["has_shopify_id"]) == (20, 4, False)


def test_bulk_update_leaves_unsent_fields(client, auth_headers, db, make_product, size_color):
    product = make_product(attributes=size_color)
    _generate(client, auth_headers, product)
    variant = db.query(ProductVariant).first()
    client.put(API, json={"variants": [{"id": variant.id, "price": 15, "sku": "KEEP"}]}, headers=auth_headers)

    client.put(API, json={"variants": [{"id": variant.id, "stock_quantity": 2}]}, headers=auth_headers)

    db.refresh(variant)
    assert (variant.price, variant.sku, variant.stock_quantity) == (15, "KEEP", 2)


def test_bulk_delete(client, auth_headers, db, make_product, size_color):
    product = make_product(attributes=size_color)
    _generate(client, auth_headers, product)
    ids = [v.id for v in db.query(ProductVariant).all()]

    response = client.request("DELETE", API, json={"variant_ids": ids[:2] + [9999]}, headers=auth_headers)

    assert response.status_code == 207
    assert response.json()["succeeded"] == 2
    assert db.query(ProductVariant).count() == 4


def test_sync_and_shopify_status(client, auth_headers, make_product, size_color, shopify):
    product = make_product(attributes=size_color)
    _generate(client, auth_headers, product)

    synced = client.post(f"{API}sync", json={"product_id": product.id, "limit": 2}, headers=auth_headers).json()
    assert (synced["synced"], synced["failed"]) == (2, 0)
    first_gid = synced["results"][0]["shopify_variant_id"]

    shopify.remote_variants = [{"id": first_gid}]
    status = client.get(f"{API}shopify-status", params={"platform_product_id": product.shopify_product_id}, headers=auth_headers).json()
    assert status["shopify_count"] == 1
    assert status["local_materialized"] == 2
    assert len(status["missing_on_shopify"]) == 1

    resynced = client.post(f"{API}force-resync", json={"product_id": product.id}, headers=auth_headers).json()
    assert resynced["synced"] == 6


def test_variant_status_reports_numeric_id(client, auth_headers, make_product, size_color):
    product = make_product(attributes=size_color)
    _generate(client, auth_headers, product)
    result = client.post(f"{API}sync", json={"product_id": product.id, "limit": 1}, headers=auth_headers).json()["results"][0]

    status = client.get(f"{API}{result['variant_id']}/status", headers=auth_headers).json()

    assert status["has_shopify_id"] is True
    assert status["shopify_numeric_id"] == 1001
    assert status["product_title"] == "Signet Ring"
    assert client.get(f"{API}9999/status", headers=auth_headers).status_code == 404


def test_replace_variant_options(client, auth_headers, make_product, size_color):
    size, color = size_color
    product = make_product(attributes=size_color)
    created = client.post(API, json={
        "product_id": product.id,
        "combination": [{"attribute_id": size.id, "attribute_value_id": size.values[0].id}],
    }, headers=auth_headers).json()

    response = client.put(f"{API}{created['id']}/options", json={"options": [
        {"attribute_id": size.id, "attribute_value_id": size.values[1].id},
        {"attribute_id": color.id, "attribute_value_id": color.values[0].id},
    ]}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["combination_key"] == "Color:Red|Size:M"
    assert len(response.json()["options"]) == 2


def test_generate_reports_total_failure(client, auth_headers, make_product, size_color, monkeypatch):
    product = make_product(attributes=size_color)

    def broken_insert(db, product_id, key, entries, **fields):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(reconciler, "insert_variant", broken_insert)
    monkeypatch.setattr(settings, "ERROR_DETAIL_LIMIT", 2)

    response = _generate(client, auth_headers, product)

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert (body["created"], body["failed"], body["total"]) == (0, 6, 6)
    assert len(body["errors"]) == 2


def test_generate_reports_partial_failure(client, auth_headers, make_product, size_color, monkeypatch):
    product = make_product(attributes=size_color)
    real_insert = reconciler.insert_variant

    def flaky_insert(db, product_id, key, entries, **fields):
        if "Size:L" in key:
            raise SQLAlchemyError("constraint failed")
        return real_insert(db, product_id, key, entries, **fields)

    monkeypatch.setattr(reconciler, "insert_variant", flaky_insert)

    response = _generate(client, auth_headers, product)

    assert response.status_code == 207
    body = response.json()
    assert (body["success"], body["partial"], body["created"], body["failed"]) == (True, True, 4, 2)
    assert sorted(e["combination_key"] for e in body["errors"]) == ["Color:Blue|Size:L", "Color:Red|Size:L"]


def test_create_rejects_negative_fields(client, auth_headers, make_product, size_color):
    size, _ = size_color
    product = make_product(attributes=size_color)
    combination = [{"attribute_id": size.id, "attribute_value_id": size.values[0].id}]

    for field in ("price", "cost", "stock_quantity"):
        response = client.post(API, json={"product_id": product.id, "combination": combination, field: -1}, headers=auth_headers)
        assert response.status_code == 400, field

    assert client.get(API, params={"product_id": product.id}, headers=auth_headers).json() == []


def test_shopify_bound_endpoints_run_in_threadpool():
    for endpoint in (
        cart_endpoints.add_variant_to_cart,
        cart_endpoints.create_checkout,
        product_endpoints.sync_products,
        variant_endpoints.sync_variants,
        variant_endpoints.force_resync_variants,
        variant_endpoints.get_shopify_status,
    ):
        assert not inspect.iscoroutinefunction(endpoint), endpoint.__name__

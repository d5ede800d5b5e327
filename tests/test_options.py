import pytest

from app.models.product import Product
from app.models.variant import ProductVariant
from app.services.options import active_variants, display_image, extract_attributes, match_variant
from app.services.reconciler import ReconcileMode, generate_for_product


def value_of(attribute, text):
    return next(v for v in attribute.values if v.value == text)


@pytest.fixture
def catalog(db, make_product, size_color):
    size, color = size_color
    product = make_product(attributes=[size, color])
    generate_for_product(db, product, ReconcileMode.REPLACE)
    product = db.get(Product, product.id)
    return product, size, color


def test_extract_attributes_dedups_in_first_seen_order(db, catalog):
    product, size, color = catalog

    attributes, primary_id = extract_attributes(active_variants(db, product))

    assert [a["name"] for a in attributes] == ["Size", "Color"]
    assert [v["value"] for v in attributes[0]["values"]] == ["S", "M", "L"]
    assert [v["value"] for v in attributes[1]["values"]] == ["Red", "Blue"]
    assert primary_id == color.id


def test_extract_attributes_without_variants():
    assert extract_attributes([]) == ([], None)


def test_full_selection_matches_single_variant(db, catalog):
    product, size, color = catalog
    variants = active_variants(db, product)

    match = match_variant(variants, {size.id: value_of(size, "M").id, color.id: value_of(color, "Blue").id})

    assert match is not None
    assert match.combination_key == "Color:Blue|Size:M"


def test_partial_selection_never_matches(db, catalog):
    product, size, color = catalog
    variants = active_variants(db, product)
    assert match_variant(variants, {size.id: value_of(size, "M").id}) is None
    assert match_variant(variants, {}) is None


def test_variant_without_options_never_matches():
    assert match_variant([ProductVariant(id=1, options=[])], {}) is None
    assert match_variant([ProductVariant(id=1, options=[])], {1: 2}) is None


def test_inactive_variants_are_not_offered(db, catalog):
    product, size, color = catalog
    for variant in db.query(ProductVariant).filter(ProductVariant.combination_key.like("%Size:L%")):
        variant.is_active = False
    db.commit()

    attributes, _ = extract_attributes(active_variants(db, product))
    assert [v["value"] for v in attributes[0]["values"]] == ["S", "M"]


def test_display_image_prefers_product_specific_image():
    attributes = [{"id": 2, "name": "Color", "values": [
        {"id": 20, "value": "Red", "image_url": "red.png"},
        {"id": 21, "value": "Blue", "image_url": None},
    ]}]

    assert display_image(attributes, 2, {2: 20}, "product.png") == "red.png"
    assert display_image(attributes, 2, {2: 20}, "product.png", images={20: "red-ring.png"}) == "red-ring.png"
    assert display_image(attributes, 2, {2: 21}, "product.png") == "product.png"
    assert display_image(attributes, 2, {}, "product.png") == "product.png"
    assert display_image(attributes, None, {2: 20}, "product.png") == "product.png"

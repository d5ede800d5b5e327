import pytest

from app.core.errors import AlreadyExists
from app.models.variant import ProductVariant
from app.models.variant_option import VariantOption
from app.services.attributes import delete_attribute, delete_value, update_attribute, update_value
from app.services.options import active_variants, match_variant
from app.services.reconciler import ReconcileMode, generate_for_product


def value_of(attribute, text):
    return next(v for v in attribute.values if v.value == text)


def keys_of(db, product):
    return sorted(
        key for (key,) in db.query(ProductVariant.combination_key).filter(ProductVariant.product_id == product.id)
    )


@pytest.fixture
def generated(db, make_product, size_color):
    product = make_product(attributes=list(size_color))
    generate_for_product(db, product, ReconcileMode.REPLACE)
    return product


def test_deleting_a_value_deletes_variants_that_select_it(db, generated, size_color):
    size, color = size_color
    medium, blue = value_of(size, "M").id, value_of(color, "Blue").id

    removed = delete_value(db, color, blue)

    assert removed == 3
    assert keys_of(db, generated) == ["Color:Red|Size:L", "Color:Red|Size:M", "Color:Red|Size:S"]
    assert db.query(VariantOption).filter(VariantOption.attribute_value_id == blue).count() == 0
    variants = active_variants(db, generated)
    assert all(len(v.options) == 2 for v in variants)
    assert match_variant(variants, {size.id: medium}) is None


def test_deleting_an_attribute_deletes_its_variants(db, generated, size_color):
    _, color = size_color

    assert delete_attribute(db, color.shop_domain, color.id) == 6
    assert keys_of(db, generated) == []
    assert db.query(VariantOption).count() == 0


def test_deleting_an_unused_value_keeps_variants(db, make_product, size_color):
    size, color = size_color
    product = make_product(attributes=[color])
    generate_for_product(db, product, ReconcileMode.REPLACE)

    assert delete_value(db, size, value_of(size, "L").id) == 0
    assert keys_of(db, product) == ["Color:Blue", "Color:Red"]


def test_attribute_rename_rekeys_variants(db, generated, size_color):
    _, color = size_color
    stored = db.query(ProductVariant).filter(ProductVariant.combination_key == "Color:Blue|Size:M").one()
    stored.price = 19.99
    db.commit()

    update_attribute(db, color.shop_domain, color.id, {"name": "Colour"})

    db.refresh(stored)
    assert stored.combination_key == "Colour:Blue|Size:M"
    result = generate_for_product(db, generated, ReconcileMode.MERGE)
    assert (result.created, result.unchanged) == (0, 6)
    assert len(keys_of(db, generated)) == 6
    db.refresh(stored)
    assert stored.price == 19.99


def test_value_rename_rekeys_variants(db, generated, size_color):
    size, _ = size_color

    update_value(db, size, value_of(size, "M").id, {"value": "Medium"})

    assert "Color:Blue|Size:Medium" in keys_of(db, generated)
    assert not any(key.endswith("Size:M") for key in keys_of(db, generated))
    result = generate_for_product(db, generated, ReconcileMode.MERGE)
    assert (result.created, result.unchanged) == (0, 6)


def test_rename_to_existing_name_conflicts(db, generated, size_color):
    size, color = size_color
    with pytest.raises(AlreadyExists):
        update_attribute(db, color.shop_domain, color.id, {"name": "Size"})
    assert "Color:Red|Size:S" in keys_of(db, generated)

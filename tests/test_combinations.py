import itertools

from app.services.combinations import ComboEntry, combination_key, count, generate


def attr(attr_id, name, *values):
    return {
        "id": attr_id,
        "name": name,
        "values": [{"id": attr_id * 10 + i, "value": v} for i, v in enumerate(values)],
    }


SIZE = attr(1, "Size", "S", "M", "L")
COLOR = attr(2, "Color", "Red", "Blue")
MATERIAL = attr(3, "Material", "Gold", "Silver", "Platinum", "Steel")


def test_generate_yields_product_of_value_counts():
    assert len(generate([SIZE, COLOR])) == 6
    assert len(generate([SIZE, COLOR, MATERIAL])) == 24
    assert count([SIZE, COLOR, MATERIAL]) == 24


def test_generate_single_attribute():
    combos = generate([COLOR])
    assert [[e.value for e in c] for c in combos] == [["Red"], ["Blue"]]


def test_generate_empty_inputs():
    assert generate([]) == []
    assert generate([SIZE, attr(9, "Engraving")]) == []
    assert count([]) == 0


def test_generate_is_deterministic_and_ordered():
    combos = generate([SIZE, COLOR])
    assert [[e.value for e in c] for c in combos] == [
        ["S", "Red"], ["S", "Blue"],
        ["M", "Red"], ["M", "Blue"],
        ["L", "Red"], ["L", "Blue"],
    ]
    assert generate([SIZE, COLOR]) == combos


def test_entries_follow_input_attribute_order():
    for combo in generate([COLOR, SIZE]):
        assert [e.attribute_name for e in combo] == ["Color", "Size"]
        assert combo[0] == ComboEntry(2, combo[0].attribute_value_id, "Color", combo[0].value)


def test_combinations_are_independent_lists():
    combos = generate([SIZE, COLOR])
    combos[0].append("x")
    assert len(combos[1]) == 2


def test_key_format():
    entries = [ComboEntry(1, 11, "Size", "M"), ComboEntry(2, 21, "Color", "Blue")]
    assert combination_key(entries) == "Color:Blue|Size:M"


def test_key_is_order_independent():
    by_size_first = {combination_key(c) for c in generate([SIZE, COLOR, MATERIAL])}
    for order in itertools.permutations([SIZE, COLOR, MATERIAL]):
        assert {combination_key(c) for c in generate(list(order))} == by_size_first


def test_distinct_combinations_have_distinct_keys():
    keys = [combination_key(c) for c in generate([SIZE, COLOR, MATERIAL])]
    assert len(set(keys)) == len(keys)

"""
Cartesian expansion of attribute value selections and the canonical
combination key that identifies a variant within its product.
"""
from typing import Any, Dict, Iterable, List, NamedTuple, Sequence


class ComboEntry(NamedTuple):
    attribute_id: int
    attribute_value_id: int
    attribute_name: str
    value: str


Combination = List[ComboEntry]


def generate(attributes: Sequence[Dict[str, Any]]) -> List[Combination]:
    """
    Enumerate every combination of one value per attribute.

    ``attributes`` is an ordered list of ``{"id", "name", "values": [{"id", "value"}]}``.
    Output order follows the input: the last attribute varies fastest. An empty
    attribute list, or any attribute without values, yields no combinations.
    """
    if not attributes or any(not attr.get("values") for attr in attributes):
        return []

    results: List[Combination] = []
    current: Combination = []

    def walk(depth: int) -> None:
        if depth == len(attributes):
            results.append(list(current))
            return
        attr = attributes[depth]
        for val in attr["values"]:
            current.append(ComboEntry(attr["id"], val["id"], attr["name"], val["value"]))
            walk(depth + 1)
            current.pop()

    walk(0)
    return results


def combination_key(combination: Iterable[ComboEntry]) -> str:
    """Order-independent key, e.g. ``"Color:Blue|Size:M"``."""
    return "|".join(sorted(f"{entry.attribute_name}:{entry.value}" for entry in combination))


def count(attributes: Sequence[Dict[str, Any]]) -> int:
    total = 1 if attributes else 0
    for attr in attributes:
        total *= len(attr.get("values") or [])
    return total

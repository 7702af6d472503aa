"""Unit tests for the product type sync."""

import pytest

from catalog_sync.resources.product_types import ProductTypeSync, type_signature
from catalog_sync.models.product_types import AttributeType


def attribute(name: str, attribute_type: dict, **fields) -> dict:
    return {"name": name, "label": {"en": name.title()}, "type": attribute_type, **fields}


def enum_type(*values: tuple[str, str]) -> dict:
    return {"name": "enum", "values": [{"key": k, "label": label} for k, label in values]}


def nested_type(key: str, sets: int = 0) -> dict:
    attribute_type = {"name": "nested", "typeReference": {"typeId": "product-type", "key": key}}
    for _ in range(sets):
        attribute_type = {"name": "set", "elementType": attribute_type}
    return attribute_type


def product_type(key: str, *attributes: dict) -> dict:
    return {"key": key, "name": key.upper(), "description": "", "attributes": list(attributes)}


def update_actions(fake_platform) -> list[dict]:
    (update,) = fake_platform.calls_to("update")
    return update[4]


def test_type_signature_ignores_enum_values():
    """Test enum values do not change the structural signature."""
    red = AttributeType.model_validate(enum_type(("red", "Red")))
    blue = AttributeType.model_validate(enum_type(("blue", "Blue")))
    number = AttributeType(name="number")

    assert type_signature(red) == type_signature(blue)
    assert type_signature(red) != type_signature(number)


@pytest.mark.asyncio
class TestProductTypeSync:
    """Test syncing product types against the in-memory platform."""

    async def test_nested_reference_to_sibling_in_same_batch(self, fake_platform, options):
        """Test a nested attribute inside sets resolves once its sibling exists."""
        statistics = await ProductTypeSync(fake_platform, options).sync(
            [
                product_type("outer", attribute("parts", nested_type("inner", sets=2))),
                product_type("inner", attribute("size", {"name": "number"})),
            ]
        )

        assert statistics.created == 2
        assert statistics.unresolved == 0
        inner_id = fake_platform.get("product-types", "inner")["id"]
        parts = fake_platform.get("product-types", "outer")["attributes"][0]
        leaf = parts["type"]["elementType"]["elementType"]
        assert leaf["typeReference"] == {"typeId": "product-type", "id": inner_id}

    async def test_second_run_is_stable(self, fake_platform, options):
        """Test syncing the same drafts again changes nothing."""
        drafts = [
            product_type("inner", attribute("size", {"name": "number"})),
            product_type("outer", attribute("parts", nested_type("inner", sets=1))),
        ]
        await ProductTypeSync(fake_platform, options).sync(drafts)

        statistics = await ProductTypeSync(fake_platform, options).sync(drafts)

        assert (statistics.created, statistics.updated, statistics.failed) == (0, 0, 0)

    async def test_empty_and_missing_description_are_equal(self, fake_platform, options):
        """Test a stored empty description matches a draft without one."""
        fake_platform.add("product-types", product_type("pt"))
        draft = product_type("pt")
        del draft["description"]

        statistics = await ProductTypeSync(fake_platform, options).sync([draft])

        assert (statistics.updated, statistics.failed) == (0, 0)
        assert fake_platform.calls_to("update") == []

    async def test_enum_values_diff(self, fake_platform, options):
        """Test enum value label changes, additions and reordering."""
        fake_platform.add(
            "product-types",
            product_type("pt", attribute("color", enum_type(("red", "Red"), ("green", "Green")))),
        )

        await ProductTypeSync(fake_platform, options).sync(
            [
                product_type(
                    "pt",
                    attribute(
                        "color",
                        enum_type(("green", "Green"), ("blue", "Blue"), ("red", "Dark red")),
                    ),
                )
            ]
        )

        assert update_actions(fake_platform) == [
            {
                "action": "changePlainEnumValueLabel",
                "attributeName": "color",
                "newValue": {"key": "red", "label": "Dark red"},
            },
            {
                "action": "addPlainEnumValue",
                "attributeName": "color",
                "value": {"key": "blue", "label": "Blue"},
            },
            {
                "action": "changePlainEnumValueOrder",
                "attributeName": "color",
                "values": [
                    {"key": "green", "label": "Green"},
                    {"key": "blue", "label": "Blue"},
                    {"key": "red", "label": "Dark red"},
                ],
            },
        ]

    async def test_attribute_changes_carry_attribute_name(self, fake_platform, options):
        """Test attribute level actions name their attribute."""
        fake_platform.add(
            "product-types", product_type("pt", attribute("size", {"name": "number"}))
        )

        await ProductTypeSync(fake_platform, options).sync(
            [
                product_type(
                    "pt",
                    attribute(
                        "size",
                        {"name": "number"},
                        label={"en": "Size (cm)"},
                        isSearchable=False,
                    ),
                )
            ]
        )

        assert update_actions(fake_platform) == [
            {"action": "changeLabel", "attributeName": "size", "label": {"en": "Size (cm)"}},
            {"action": "changeIsSearchable", "attributeName": "size", "isSearchable": False},
        ]

    async def test_changed_attribute_type_is_replaced(self, fake_platform, options):
        """Test an incompatible type change removes and re-adds the attribute."""
        fake_platform.add(
            "product-types",
            product_type(
                "pt", attribute("size", {"name": "text"}), attribute("weight", {"name": "number"})
            ),
        )

        await ProductTypeSync(fake_platform, options).sync(
            [
                product_type(
                    "pt",
                    attribute("size", {"name": "number"}),
                    attribute("weight", {"name": "number"}),
                )
            ]
        )

        actions = update_actions(fake_platform)
        assert [a["action"] for a in actions] == [
            "removeAttributeDefinition",
            "addAttributeDefinition",
            "changeAttributeOrderByName",
        ]
        assert actions[0] == {"action": "removeAttributeDefinition", "name": "size"}
        assert actions[2]["attributeNames"] == ["size", "weight"]

    async def test_duplicate_attribute_names_fail_the_draft(
        self, fake_platform, options, errors
    ):
        """Test duplicate attribute names are reported as a failure."""
        fake_platform.add("product-types", product_type("pt"))

        statistics = await ProductTypeSync(fake_platform, options).sync(
            [
                product_type(
                    "pt", attribute("size", {"name": "text"}), attribute("size", {"name": "text"})
                )
            ]
        )

        assert statistics.failed == 1
        assert "Duplicated attribute definition name: 'size'" in errors[0]["message"]
        assert fake_platform.calls_to("update") == []

    async def test_unknown_attribute_type_warns(self, fake_platform, options, warnings):
        """Test an attribute of an unknown type is skipped with a warning."""
        fake_platform.add(
            "product-types", product_type("pt", attribute("location", {"name": "geo"}))
        )

        statistics = await ProductTypeSync(fake_platform, options).sync(
            [
                product_type(
                    "pt", attribute("location", {"name": "geo"}, label={"en": "Where"})
                )
            ]
        )

        assert statistics.updated == 0
        assert statistics.failed == 0
        assert warnings == [
            "Attribute definition 'location' has an unknown type 'geo'; "
            "no update actions were built for it."
        ]

"""Unit tests for batch validation of drafts."""

import pytest

from catalog_sync.models.common import ReferenceKey
from catalog_sync.models.states import StateDraft
from catalog_sync.options import SyncOptions
from catalog_sync.resources.categories import CategoryBatchValidator
from catalog_sync.resources.inventories import InventoryEntryBatchValidator
from catalog_sync.resources.product_types import ProductTypeBatchValidator
from catalog_sync.resources.states import StateBatchValidator
from catalog_sync.validation import is_blank, is_uuid

UUID_KEY = "3f2504e0-4f89-41d3-9a0c-0305e82c3301"


def state_ref(key: str) -> dict:
    return {"typeId": "state", "key": key}


def test_is_blank_and_is_uuid():
    """Test the small predicates used by the validators."""
    assert is_blank(None)
    assert is_blank("  ")
    assert not is_blank("k")
    assert is_uuid(UUID_KEY)
    assert not is_uuid("not-a-uuid")


class TestStateBatchValidator:
    """Test validation of state drafts."""

    def test_valid_drafts_and_keys_to_cache(self):
        """Test that own keys and referenced keys are collected."""
        result = StateBatchValidator().validate(
            [
                {"key": "s1", "transitions": [state_ref("s2")]},
                StateDraft(key="s2"),
            ]
        )

        assert [d.key for d in result.valid_drafts] == ["s1", "s2"]
        assert result.keys_to_cache == {
            ReferenceKey(type_id="state", key="s1"),
            ReferenceKey(type_id="state", key="s2"),
        }
        assert result.errors == []

    def test_null_draft(self):
        """Test that a null draft is rejected."""
        result = StateBatchValidator().validate([None])

        assert result.valid_drafts == []
        assert result.errors[0][0].message == "StateDraft is null."

    def test_blank_key_mentions_name(self):
        """Test that a keyless draft is rejected with its name."""
        result = StateBatchValidator().validate([{"key": " ", "name": {"en": "Open"}}])

        (error, raw), = result.errors
        assert "doesn't have a key" in error.message
        assert "Open" in error.message
        assert raw == {"key": " ", "name": {"en": "Open"}}

    def test_unparsable_draft(self):
        """Test that a draft that does not parse is rejected."""
        result = StateBatchValidator().validate([{"key": "s1", "type": "NoSuchState"}])

        assert result.errors[0][0].message.startswith("Failed to parse StateDraft")
        assert result.errors[0][0].resource_key == "s1"

    def test_reference_without_id_or_key(self):
        """Test that an empty reference is reported with its position."""
        result = StateBatchValidator().validate(
            [{"key": "s1", "transitions": [state_ref("s2"), {"typeId": "state"}]}]
        )

        message = result.errors[0][0].message
        assert "has invalid state references on the following transitions" in message
        assert "1: reference has neither an id nor a key" in message

    def test_uuid_keys_rejected_unless_allowed(self):
        """Test the UUID key switch."""
        draft = {"key": "s1", "transitions": [state_ref(UUID_KEY)]}

        rejected = StateBatchValidator().validate([draft])
        allowed = StateBatchValidator(SyncOptions(allow_uuid_keys=True)).validate([draft])

        assert "looks like a UUID" in rejected.errors[0][0].message
        assert [d.key for d in allowed.valid_drafts] == ["s1"]

    def test_references_by_id_need_no_lookup(self):
        """Test that id references are not added to the keys to cache."""
        result = StateBatchValidator().validate(
            [{"key": "s1", "transitions": [{"typeId": "state", "id": "id-9"}]}]
        )
        assert result.keys_to_cache == {ReferenceKey(type_id="state", key="s1")}


class TestProductTypeBatchValidator:
    """Test validation of product type drafts."""

    def test_collects_nested_references_inside_sets(self):
        """Test that nested type references in set layers are collected."""
        attribute = {
            "name": "bundle",
            "label": {"en": "Bundle"},
            "type": {
                "name": "set",
                "elementType": {
                    "name": "set",
                    "elementType": {
                        "name": "nested",
                        "typeReference": {"typeId": "product-type", "key": "inner"},
                    },
                },
            },
        }
        result = ProductTypeBatchValidator().validate(
            [{"key": "outer", "name": "Outer", "attributes": [attribute]}]
        )

        assert ReferenceKey(type_id="product-type", key="inner") in result.keys_to_cache

    def test_invalid_nested_reference(self):
        """Test that a nested type without a reference key is reported."""
        attribute = {
            "name": "broken",
            "label": {"en": "Broken"},
            "type": {"name": "nested", "typeReference": {"typeId": "product-type"}},
        }
        result = ProductTypeBatchValidator().validate(
            [{"key": "pt", "name": "PT", "attributes": [attribute]}]
        )

        message = result.errors[0][0].message
        assert "invalid productType references on the following AttributeDefinitionDrafts" in message
        assert "broken" in message


class TestCategoryBatchValidator:
    """Test validation of category drafts."""

    def test_asset_without_key(self):
        """Test that assets must carry a key."""
        result = CategoryBatchValidator().validate(
            [
                {
                    "key": "c1",
                    "name": {"en": "C1"},
                    "slug": {"en": "c1"},
                    "assets": [{"name": {"en": "Image"}}],
                }
            ]
        )
        assert "0: asset has no key" in result.errors[0][0].message

    def test_collects_parent_and_custom_type(self):
        """Test that parent and custom type references are collected."""
        result = CategoryBatchValidator().validate(
            [
                {
                    "key": "c2",
                    "name": {"en": "C2"},
                    "slug": {"en": "c2"},
                    "parent": {"typeId": "category", "key": "c1"},
                    "custom": {"type": {"typeId": "type", "key": "cat-type"}},
                }
            ]
        )
        assert result.keys_to_cache == {
            ReferenceKey(type_id="category", key="c2"),
            ReferenceKey(type_id="category", key="c1"),
            ReferenceKey(type_id="type", key="cat-type"),
        }


class TestInventoryEntryBatchValidator:
    """Test validation of inventory entry drafts."""

    @pytest.mark.parametrize("sku", [None, ""])
    def test_sku_required(self, sku):
        """Test that an inventory entry needs a SKU."""
        result = InventoryEntryBatchValidator().validate([{"key": "i1", "sku": sku}])
        assert "doesn't have a SKU" in result.errors[0][0].message

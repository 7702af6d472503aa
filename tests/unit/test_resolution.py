"""Unit tests for reference resolution."""

import pytest

from catalog_sync.cache import KeyIdCache
from catalog_sync.exceptions import ReferenceResolutionError, ValidationError
from catalog_sync.models.common import ReferenceKey, ResourceIdentifier
from catalog_sync.models.product_types import AttributeType, ProductTypeDraft
from catalog_sync.models.states import StateDraft
from catalog_sync.resolution import MAX_TYPE_DEPTH, ReferenceResolver, ResolutionContext
from catalog_sync.resources.product_types import ProductTypeSync
from catalog_sync.resources.states import StateSync


@pytest.fixture
def state_cache(mock_client):
    cache = KeyIdCache(mock_client)
    cache.put(ReferenceKey(type_id="state", key="s2"), "id-2")
    cache.put(ReferenceKey(type_id="product-type", key="inner"), "pt-inner")
    return cache


def nested_in_sets(depth: int, key: str = "inner") -> AttributeType:
    attribute_type = AttributeType(
        name="nested",
        type_reference=ResourceIdentifier(type_id="product-type", key=key),
    )
    for _ in range(depth):
        attribute_type = AttributeType(name="set", element_type=attribute_type)
    return attribute_type


class TestResolutionContext:
    """Test rewriting individual references."""

    def test_reference_resolved_to_id(self, state_cache):
        """Test that a cached key becomes an id reference."""
        context = ResolutionContext(state_cache)
        resolved = context.reference(ResourceIdentifier(type_id="state", key="s2"))

        assert resolved.id == "id-2"
        assert resolved.key is None
        assert context.missing == set()

    def test_missing_reference_recorded(self, state_cache):
        """Test that a missing key is recorded and the reference kept."""
        context = ResolutionContext(state_cache)
        reference = ResourceIdentifier(type_id="state", key="s9")

        assert context.reference(reference) is reference
        assert context.missing == {ReferenceKey(type_id="state", key="s9")}

    def test_id_reference_passes_through(self, state_cache):
        """Test that references with an id are left untouched."""
        context = ResolutionContext(state_cache)
        reference = ResourceIdentifier(type_id="state", id="id-7")
        assert context.reference(reference) is reference

    def test_attribute_type_rebuilds_set_layers(self, state_cache):
        """Test that the set wrappers are preserved around the resolved leaf."""
        resolved = ResolutionContext(state_cache).attribute_type(nested_in_sets(3))

        assert resolved.name == "set"
        assert resolved.element_type.element_type.name == "set"
        leaf = resolved.innermost()
        assert leaf.type_reference.id == "pt-inner"

    def test_attribute_type_too_deep(self, state_cache):
        """Test that absurdly deep nesting is rejected."""
        with pytest.raises(ValidationError, match="maximum depth"):
            ResolutionContext(state_cache).attribute_type(
                nested_in_sets(MAX_TYPE_DEPTH + 1)
            )


class TestReferenceResolver:
    """Test resolving whole drafts."""

    def test_all_missing_keys_reported(self, state_cache, mock_client):
        """Test that every missing key is reported at once."""
        sync = StateSync(mock_client)
        draft = StateDraft(
            key="s1",
            transitions=[
                ResourceIdentifier(type_id="state", key="s2"),
                ResourceIdentifier(type_id="state", key="s3"),
                ResourceIdentifier(type_id="state", key="s4"),
            ],
        )

        with pytest.raises(ReferenceResolutionError) as exc_info:
            ReferenceResolver(state_cache).resolve(draft, sync.resolve_references)

        assert exc_info.value.missing_keys == {
            ReferenceKey(type_id="state", key="s3"),
            ReferenceKey(type_id="state", key="s4"),
        }
        assert exc_info.value.resource_key == "s1"

    def test_resolved_draft_is_a_copy(self, state_cache, mock_client):
        """Test that the input draft is not modified."""
        sync = StateSync(mock_client)
        draft = StateDraft(
            key="s1", transitions=[ResourceIdentifier(type_id="state", key="s2")]
        )

        resolved = ReferenceResolver(state_cache).resolve(draft, sync.resolve_references)

        assert resolved.transitions[0].id == "id-2"
        assert draft.transitions[0].id is None

    def test_product_type_nested_reference(self, state_cache, mock_client):
        """Test resolving nested attribute types of a product type draft."""
        sync = ProductTypeSync(mock_client)
        draft = ProductTypeDraft.model_validate(
            {
                "key": "outer",
                "name": "Outer",
                "attributes": [
                    {
                        "name": "items",
                        "label": {"en": "Items"},
                        "type": nested_in_sets(1).to_payload(),
                    }
                ],
            }
        )

        resolved = ReferenceResolver(state_cache).resolve(draft, sync.resolve_references)

        assert resolved.attributes[0].type.innermost().type_reference.id == "pt-inner"

"""
Tests for epochledger/distributor/registry.py

Tests the sentinel-headed component list.
"""

import pytest

from epochledger.config import COMPONENTS_SENTINEL
from epochledger.distributor.registry import ComponentInfo, ComponentRegistry
from epochledger.exceptions import RegistryError, UnknownComponentError


def create_test_registry(ids=("a", "b", "c"), max_components: int = 32) -> ComponentRegistry:
    registry = ComponentRegistry(max_components)
    previous = COMPONENTS_SENTINEL
    for component_id in ids:
        registry.insert(component_id, after=previous)
        previous = component_id
    return registry


class TestComponentRegistry:
    """Test insertion, removal and record keeping."""

    def test_empty_registry(self):
        registry = ComponentRegistry()
        assert len(registry) == 0
        assert registry.ids() == []
        assert registry.info(COMPONENTS_SENTINEL) == ComponentInfo(None, 0, 0, 0)

    def test_insert_keeps_order(self):
        registry = create_test_registry()
        assert registry.ids() == ["a", "b", "c"]
        assert len(registry) == 3
        assert "b" in registry

    def test_insert_after_sentinel_prepends(self):
        registry = create_test_registry()
        registry.insert("z")
        assert registry.ids() == ["z", "a", "b", "c"]

    def test_insert_in_the_middle(self):
        registry = create_test_registry()
        registry.insert("x", after="a", numerator=2, denominator=3, cursor=4)
        assert registry.ids() == ["a", "x", "b", "c"]
        assert registry.info("x") == ComponentInfo("b", 4, 2, 3)
        assert registry.info("c").next == COMPONENTS_SENTINEL

    def test_remove_with_and_without_previous(self):
        registry = create_test_registry()
        registry.remove("b", previous="a")
        registry.remove("c")
        assert registry.ids() == ["a"]
        assert len(registry) == 1

    def test_remove_with_wrong_previous(self):
        registry = create_test_registry()
        with pytest.raises(RegistryError):
            registry.remove("c", previous="a")
        assert registry.ids() == ["a", "b", "c"]

    def test_removed_component_keeps_cursor(self):
        """Test a removed record keeps its cursor and zeroes its scale."""
        registry = create_test_registry()
        registry.advance_cursor("b")
        registry.advance_cursor("b")
        registry.remove("b")

        assert registry.info("b") == ComponentInfo(None, 2, 0, 0)
        assert registry.is_known("b")
        assert not registry.is_active("b")

        registry.insert("b", numerator=5, cursor=9)
        assert registry.record("b").cursor == 2
        assert registry.record("b").numerator == 5

    def test_unknown_component(self):
        registry = create_test_registry()
        assert registry.info("nope") == ComponentInfo(None, 0, 0, 0)
        with pytest.raises(UnknownComponentError):
            registry.record("nope")
        with pytest.raises(UnknownComponentError):
            registry.advance_cursor("nope")

    def test_invalid_inserts(self):
        registry = create_test_registry(max_components=3)
        with pytest.raises(RegistryError):
            registry.insert("a")
        with pytest.raises(RegistryError):
            registry.insert("d")

        registry.remove("c")
        with pytest.raises(RegistryError):
            registry.insert("d", after="missing")
        with pytest.raises(RegistryError):
            registry.insert("d", numerator=0)
        with pytest.raises(RegistryError):
            registry.insert(COMPONENTS_SENTINEL)

    def test_set_scale(self):
        registry = create_test_registry()
        registry.set_scale("a", 3, 2)
        assert registry.info("a")[2:] == (3, 2)
        with pytest.raises(RegistryError):
            registry.set_scale("a", 1, 0)
        with pytest.raises(RegistryError):
            registry.set_scale("nope", 1, 1)

    def test_find_previous(self):
        registry = create_test_registry()
        assert registry.find_previous("a") == COMPONENTS_SENTINEL
        assert registry.find_previous("c") == "b"

    def test_state_round_trip(self):
        registry = create_test_registry()
        registry.remove("b")
        other = ComponentRegistry()
        other.load_state(registry.state_to_dict())
        assert other.ids() == ["a", "c"]
        assert other.info("b") == registry.info("b")

import sys
import types

import pytest

from chatledger.models.records import ProviderSessionRecord, RawTurn, SourceLocation
from chatledger.providers.metadata import AdapterMetadata
from chatledger.providers.registry import ProviderRegistry, load_adapter_module


class _StaticAdapter:
    def __init__(self, name: str, priority: int = 50) -> None:
        self.metadata = AdapterMetadata(
            name=name,
            version="0.1.0",
            supported_formats=[".JSON"],
            priority=priority,
        )

    def discover(self) -> list[SourceLocation]:
        return [SourceLocation(provider=self.metadata.name, uri="mem://one")]

    def extract(self, location: SourceLocation) -> list[ProviderSessionRecord]:
        return [
            ProviderSessionRecord(
                provider=self.metadata.name,
                turns=[RawTurn(role="user", content="hi")],
                source=location,
            )
        ]


def test_registry_orders_by_priority():
    registry = ProviderRegistry()
    registry.register(_StaticAdapter("low", priority=10))
    registry.register(_StaticAdapter("high", priority=90))
    registry.register(_StaticAdapter("mid"))

    assert registry.names == ["high", "mid", "low"]
    assert "mid" in registry
    assert len(registry) == 3


def test_register_replaces_same_name():
    registry = ProviderRegistry()
    first = _StaticAdapter("dup")
    second = _StaticAdapter("dup")
    registry.register(first)
    registry.register(second)

    assert registry.get("dup") is second
    assert len(registry) == 1


def test_register_rejects_non_adapters():
    with pytest.raises(TypeError):
        ProviderRegistry().register(object())


def test_unknown_provider():
    registry = ProviderRegistry()
    registry.register(_StaticAdapter("known"))

    with pytest.raises(KeyError, match="known"):
        registry.get("missing")


def test_metadata_validation():
    with pytest.raises(ValueError):
        AdapterMetadata(name="", version="1.0.0")
    with pytest.raises(ValueError):
        AdapterMetadata(name="x", version="1.0.0", priority=101)

    metadata = _StaticAdapter("fmt").metadata
    assert metadata.supported_formats == [".json"]


def test_load_adapter_module(monkeypatch):
    module = types.ModuleType("fake_chat_plugin")
    module.get_adapter = lambda: _StaticAdapter("plugin")
    monkeypatch.setitem(sys.modules, "fake_chat_plugin", module)
    registry = ProviderRegistry()

    assert load_adapter_module(registry, "fake_chat_plugin") is True
    assert registry.names == ["plugin"]


def test_load_adapter_module_failures(monkeypatch):
    empty = types.ModuleType("empty_chat_plugin")
    monkeypatch.setitem(sys.modules, "empty_chat_plugin", empty)
    registry = ProviderRegistry()

    assert load_adapter_module(registry, "no_such_chat_plugin_module") is False
    assert load_adapter_module(registry, "empty_chat_plugin") is False
    assert len(registry) == 0

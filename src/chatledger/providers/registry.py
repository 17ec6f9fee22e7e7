"""
Provider adapter registry.

The registry maps provider names to adapter instances. Built-in adapters are
registered by `get_default_registry()`; additional adapters are loaded from
the modules listed in `settings.provider_modules`, each exposing
`get_adapter()` or an `ADAPTER` instance.
"""

import logging
from importlib import import_module
from typing import Optional

from chatledger.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Registry of provider adapters keyed by metadata name.

    Example:
        >>> from chatledger.providers.codex import CodexAdapter
        >>> registry = ProviderRegistry()
        >>> registry.register(CodexAdapter())
        >>> registry.get("codex").discover()
    """

    def __init__(self) -> None:
        """Initialize an empty adapter registry."""
        self._adapters: dict[str, ProviderAdapter] = {}

    def register(self, adapter: ProviderAdapter) -> None:
        """
        Register an adapter, replacing any adapter with the same name.

        Raises:
            TypeError: If the object does not implement ProviderAdapter
        """
        if not isinstance(adapter, ProviderAdapter):
            raise TypeError(f"{type(adapter).__name__} is not a ProviderAdapter")
        name = adapter.metadata.name
        if name in self._adapters:
            logger.warning(f"Replacing registered adapter for provider {name!r}")
        self._adapters[name] = adapter
        logger.debug(f"Registered adapter: {type(adapter).__name__} as {name!r}")

    def get(self, name: str) -> ProviderAdapter:
        """
        Look up an adapter by provider name.

        Raises:
            KeyError: If no adapter is registered under that name
        """
        try:
            return self._adapters[name]
        except KeyError:
            known = ", ".join(self.names) or "none"
            raise KeyError(f"Unknown provider {name!r} (registered: {known})") from None

    def adapters(self) -> list[ProviderAdapter]:
        """Registered adapters, highest priority first."""
        return sorted(
            self._adapters.values(),
            key=lambda a: (-a.metadata.priority, a.metadata.name),
        )

    @property
    def names(self) -> list[str]:
        return [adapter.metadata.name for adapter in self.adapters()]

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def _configured_modules(value: list[str] | str) -> list[str]:
    # Accept comma-separated env values
    if isinstance(value, str):
        return [m.strip() for m in value.split(",") if m.strip()]
    return list(value)


def load_adapter_module(registry: ProviderRegistry, module_path: str) -> bool:
    """Import one plugin module and register its adapter. Returns success."""
    try:
        module = import_module(module_path)
    except ImportError as e:
        logger.warning(f"Failed to load adapter module {module_path}: {e}")
        return False

    factory = getattr(module, "get_adapter", None)
    adapter = factory() if callable(factory) else getattr(module, "ADAPTER", None)
    if adapter is None:
        logger.warning(f"Module {module_path} did not provide get_adapter()/ADAPTER")
        return False

    try:
        registry.register(adapter)
    except TypeError as e:
        logger.warning(f"Module {module_path}: {e}")
        return False
    logger.info(f"Loaded external adapter from {module_path}")
    return True


# Global registry instance (singleton pattern)
_default_registry: Optional[ProviderRegistry] = None


def get_default_registry() -> ProviderRegistry:
    """
    Get the default global adapter registry.

    The registry is lazy-initialized on first access and includes all
    built-in adapters plus any configured plugin modules.
    """
    global _default_registry

    if _default_registry is None:
        from chatledger.config import settings
        from chatledger.providers.codex import CodexAdapter
        from chatledger.providers.json_export import JsonExportAdapter

        registry = ProviderRegistry()
        registry.register(CodexAdapter())
        registry.register(JsonExportAdapter())

        for module_path in _configured_modules(settings.provider_modules):
            load_adapter_module(registry, module_path)

        logger.debug("Initialized default adapter registry")
        _default_registry = registry

    return _default_registry

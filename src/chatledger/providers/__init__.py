"""
Provider adapters.

An adapter turns one provider's on-disk or wire format into provider-neutral
ProviderSessionRecords. Adapters never write to the store and never assign
canonical ids.
"""

from chatledger.providers.base import ProviderAdapter
from chatledger.providers.metadata import AdapterMetadata
from chatledger.providers.registry import ProviderRegistry, get_default_registry

__all__ = [
    "AdapterMetadata",
    "ProviderAdapter",
    "ProviderRegistry",
    "get_default_registry",
]

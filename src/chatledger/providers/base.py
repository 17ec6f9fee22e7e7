"""
Provider adapter protocol.

This module defines the interface every source of chat sessions implements
to feed the harvest pipeline.
"""

from typing import Protocol, Sequence, runtime_checkable

from chatledger.models.records import ProviderSessionRecord, SourceLocation
from chatledger.providers.metadata import AdapterMetadata


@runtime_checkable
class ProviderAdapter(Protocol):
    """
    Protocol for provider adapters.

    Adapters are read-only with respect to the store: they produce
    ProviderSessionRecords and the harvest pipeline reconciles them.
    """

    @property
    def metadata(self) -> AdapterMetadata:
        """
        Get adapter metadata.

        Returns:
            AdapterMetadata with the provider name, version and formats
        """
        ...

    def discover(self) -> Sequence[SourceLocation]:
        """
        List the sources this adapter can read.

        Returns:
            Opaque source locations (files, API endpoints), in a stable order

        Note:
            Discovery should be cheap. It must not parse sources; a location
            that later fails to parse is reported by extract().
        """
        ...

    def extract(self, location: SourceLocation) -> Sequence[ProviderSessionRecord]:
        """
        Read one source into provider session records.

        Args:
            location: A location previously returned by discover()

        Returns:
            Zero or more session records, turns in source order

        Raises:
            ExtractionError: If this source cannot be parsed. Only this
                source is skipped; the harvest continues with the others.
        """
        ...

"""
Adapter metadata definitions.

Adapters declare their name, version and the source formats they read.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass
class AdapterMetadata:
    """
    Metadata about a provider adapter implementation.

    Attributes:
        name: Provider identifier (e.g., 'codex', 'json-export'); also the
              `provider` value written on harvested sessions
        version: Adapter version using semantic versioning (e.g., '1.0.0')
        supported_formats: File extensions read by the adapter (may be empty
                           for API-backed adapters)
        priority: Ordering hint (0-100, higher first) when listing adapters
        description: Optional human-readable description

    Example:
        >>> metadata = AdapterMetadata(
        ...     name="codex",
        ...     version="1.0.0",
        ...     supported_formats=[".jsonl"],
        ... )
    """

    name: str
    version: str
    supported_formats: List[str] = field(default_factory=list)
    priority: int = 50
    description: str = ""

    def __post_init__(self) -> None:
        """Validate metadata after initialization."""
        if not self.name:
            raise ValueError("Adapter name cannot be empty")

        if not self.version:
            raise ValueError("Adapter version cannot be empty")

        if not 0 <= self.priority <= 100:
            raise ValueError("Priority must be between 0 and 100")

        self.supported_formats = [fmt.lower() for fmt in self.supported_formats]

"""Custom exceptions for chatledger."""

from typing import Any, Optional


class ChatLedgerError(Exception):
    """Base class for all chatledger errors."""

    code = "chatledger_error"

    def __init__(self, message: str, *, retryable: bool = False):
        self.message = message
        self.retryable = retryable
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        """Extra structured fields for API payloads."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Structured error payload distinguishing retryable from terminal."""
        return {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
            **self.details(),
        }


class ExtractionError(ChatLedgerError):
    """Raised when a provider adapter cannot parse one source location."""

    code = "extraction_error"

    def __init__(self, location: str, reason: str):
        self.location = location
        self.reason = reason
        super().__init__(f"Could not extract {location}: {reason}", retryable=False)

    def details(self) -> dict[str, Any]:
        return {"location": self.location}


class IdentityConflictError(ChatLedgerError):
    """Raised when a record diverges from the stored history of the same session."""

    code = "identity_conflict"

    def __init__(
        self, provider: str, provider_session_id: Optional[str], position: int
    ):
        self.provider = provider
        self.provider_session_id = provider_session_id
        self.position = position
        super().__init__(
            f"Session {provider}:{provider_session_id} diverges from stored "
            f"history at turn {position}"
        )

    def details(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "provider_session_id": self.provider_session_id,
            "position": self.position,
        }


class TransactionError(ChatLedgerError):
    """Raised when a unit of work fails and is rolled back."""

    code = "transaction_error"


class StaleCursorError(ChatLedgerError):
    """Raised when a sync cursor predates retained history (or is ahead of it)."""

    code = "stale_cursor"

    def __init__(self, from_version: int, oldest_version: int, current_version: int):
        self.from_version = from_version
        self.oldest_version = oldest_version
        self.current_version = current_version
        super().__init__(
            f"Cursor {from_version} is outside retained history "
            f"[{oldest_version}, {current_version}]; fetch a snapshot"
        )

    def details(self) -> dict[str, Any]:
        return {
            "action": "snapshot",
            "from_version": self.from_version,
            "oldest_version": self.oldest_version,
            "current_version": self.current_version,
        }


class IntegrityViolation(ChatLedgerError):
    """Raised before commit when a write would break a data model invariant."""

    code = "integrity_violation"


class NotFoundError(ChatLedgerError):
    """Raised when a referenced entity does not exist."""

    code = "not_found"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")

    def details(self) -> dict[str, Any]:
        return {"entity_type": self.entity_type, "entity_id": str(self.entity_id)}


class SubscriberDisconnected(ChatLedgerError):
    """Raised to a live subscriber whose delivery queue was closed."""

    code = "subscriber_disconnected"

    def __init__(self, reason: str, last_version: int):
        self.reason = reason
        self.last_version = last_version
        super().__init__(
            f"Subscription closed ({reason}); resume with delta from {last_version}",
            retryable=True,
        )

    def details(self) -> dict[str, Any]:
        return {"reason": self.reason, "last_version": self.last_version}

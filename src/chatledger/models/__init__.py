"""Database models and provider-neutral record types."""

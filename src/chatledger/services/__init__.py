"""Services layered over the storage engine."""

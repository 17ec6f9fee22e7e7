"""Database layer: engine setup, storage engine, repositories and full-text index."""

"""Sync engine: versioned event log, delta/snapshot reads and live fan-out."""

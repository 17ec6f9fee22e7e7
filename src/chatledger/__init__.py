"""
chatledger - canonical, versioned storage for AI chat sessions.

Harvests sessions from provider adapters, normalizes them into one
Session/Message graph, and records every mutation in a replicable event log.
"""

__version__ = "0.1.0"

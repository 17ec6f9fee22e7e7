"""Harvest pipeline: reconciliation of provider records into the canonical model."""

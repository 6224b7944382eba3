"""Shared helpers: retry state, resource references, events, text."""

"""Logging setup and per-call context."""

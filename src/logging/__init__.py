"""Structured logging setup and per-request context."""

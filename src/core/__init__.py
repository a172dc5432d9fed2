"""Shared algorithms."""

"""Fingerprint cache engine: normalization, matching, storage, persistence."""

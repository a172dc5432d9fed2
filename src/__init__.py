"""answercache: fingerprint response cache for chat Q&A backends."""

from answercache.version import __version__

__all__ = ["__version__"]

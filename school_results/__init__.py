"""Multi-tenant school results, class statistics and audit history service."""

__version__ = "1.0.0"

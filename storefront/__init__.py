"""Storefront: informational pages with database-backed sessions."""

__version__ = "1.0.0"

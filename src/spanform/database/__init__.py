"""
Database integration package for spanform.

This package provides:
- Async access to a Spanner database (queries, DML and DDL batches)
- INFORMATION_SCHEMA introspection of a single table
"""

from .connection import SpannerDatabase
from .introspection import CatalogIntrospector, CatalogColumn, CatalogTable

__all__ = [
    "SpannerDatabase",
    "CatalogIntrospector",
    "CatalogColumn",
    "CatalogTable",
]

"""
Database-backed stores.
"""

from .postgres import PostgresUsageStore

__all__ = ["PostgresUsageStore"]

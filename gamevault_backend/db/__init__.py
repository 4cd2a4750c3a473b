"""
Database helpers for GameVault backend scripts/services.
"""

from gamevault_backend.db.connection import DatabaseConnectionError, resolve_database_url
from gamevault_backend.db.supabase import create_supabase_admin_client

__all__ = [
    "DatabaseConnectionError",
    "create_supabase_admin_client",
    "resolve_database_url",
]

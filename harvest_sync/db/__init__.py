"""
Database helpers for Harvest sync scripts/services.
"""

from harvest_sync.db.supabase import create_supabase_admin_client

__all__ = [
    "create_supabase_admin_client",
]

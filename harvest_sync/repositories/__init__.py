"""
Repository layer for DB access patterns.
"""

from harvest_sync.repositories.harvest_records import (
    HarvestRepositoryError,
    SupabaseLocalStore,
    assert_harvest_table_exists,
    find_record_by_external_id,
    update_record,
    upsert_record,
)

__all__ = [
    "HarvestRepositoryError",
    "SupabaseLocalStore",
    "assert_harvest_table_exists",
    "find_record_by_external_id",
    "update_record",
    "upsert_record",
]

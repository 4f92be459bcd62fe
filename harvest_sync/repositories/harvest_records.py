from __future__ import annotations

from typing import Any, Mapping

from supabase import Client

from harvest_sync.db.supabase import HARVEST_SCHEMA
from harvest_sync.models.harvest import MODELS_BY_KEY, HarvestRecord


class HarvestRepositoryError(RuntimeError):
    pass


def _raise_for_supabase_error(response: Any, context: str) -> None:
    if hasattr(response, "error") and response.error:
        raise HarvestRepositoryError(f"Supabase error during {context}: {response.error}")


def assert_harvest_table_exists(db: Client, table: str) -> None:
    """
    Fail fast with a clear error if `harvest.<table>` is missing in Supabase.
    """

    def is_missing_relation(message: str) -> bool:
        msg = (message or "").casefold()
        return (
            "42p01" in msg  # undefined_table
            or "pgrst205" in msg  # postgrest: relation not found in schema cache
            or ("relation" in msg and "does not exist" in msg)
            or ("schema cache" in msg and table in msg)
        )

    help_message = (
        f"Database table `{HARVEST_SCHEMA}.{table}` is missing. "
        "Apply the harvest schema migrations, then re-run the job."
    )

    try:
        response = db.schema(HARVEST_SCHEMA).table(table).select("id").limit(1).execute()
    except Exception as exc:
        if is_missing_relation(str(exc)):
            raise HarvestRepositoryError(help_message) from exc
        raise HarvestRepositoryError(f"Supabase error during {HARVEST_SCHEMA}.{table} preflight: {exc}") from exc

    error = getattr(response, "error", None)
    if not error:
        return
    if is_missing_relation(str(error)):
        raise HarvestRepositoryError(help_message)
    raise HarvestRepositoryError(f"Supabase error during {HARVEST_SCHEMA}.{table} preflight: {error}")


def find_record_by_external_id(db: Client, table: str, external_id: int | str) -> dict[str, Any] | None:
    response = (
        db.schema(HARVEST_SCHEMA)
        .table(table)
        .select("*")
        .eq("external_id", int(external_id))
        .limit(1)
        .execute()
    )
    _raise_for_supabase_error(response, f"finding {table} by external id")
    data = response.data or []
    if isinstance(data, list) and data:
        return data[0]
    return None


def upsert_record(db: Client, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
    response = (
        db.schema(HARVEST_SCHEMA)
        .table(table)
        .upsert(dict(row), on_conflict="external_id")
        .execute()
    )
    _raise_for_supabase_error(response, f"upserting {table}")
    data = response.data or []
    if isinstance(data, list) and data:
        return data[0]
    raise HarvestRepositoryError(f"Supabase upsert returned no data for {table}.")


def update_record(db: Client, table: str, record_id: str, patch: Mapping[str, Any]) -> dict[str, Any]:
    response = db.schema(HARVEST_SCHEMA).table(table).update(dict(patch)).eq("id", str(record_id)).execute()
    _raise_for_supabase_error(response, f"updating {table}")
    data = response.data or []
    if isinstance(data, list) and data:
        return data[0]
    raise HarvestRepositoryError(f"Supabase update returned no data for {table}.")


class SupabaseLocalStore:
    """
    Local store for mirrored Harvest records, keyed by canonical relation key.

    Each key maps to a model type whose `table` lives in the `harvest` schema.
    """

    def __init__(self, db: Client, models: Mapping[str, type[HarvestRecord]] | None = None) -> None:
        self.db = db
        self.models = dict(models or MODELS_BY_KEY)

    def _model(self, relation_key: str) -> type[HarvestRecord]:
        model = self.models.get(relation_key)
        if model is None:
            raise HarvestRepositoryError(f"No local table is registered for relation {relation_key!r}.")
        return model

    def find_by_external_id(self, relation_key: str, external_id: Any) -> HarvestRecord | None:
        model = self._model(relation_key)
        row = find_record_by_external_id(self.db, model.table, external_id)
        return model.from_row(row) if row else None

    def save(self, relation_key: str, entity: HarvestRecord) -> HarvestRecord:
        model = self._model(relation_key)
        stored = upsert_record(self.db, model.table, entity.to_row())
        if stored.get("id") is None:
            raise HarvestRepositoryError(f"Supabase upsert for {model.table} returned a row without an id.")
        entity.id = str(stored["id"])
        return entity

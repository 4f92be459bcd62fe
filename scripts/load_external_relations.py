#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace

from harvest_sync.config import HarvestConfig, load_harvest_config
from harvest_sync.db.supabase import create_supabase_admin_client
from harvest_sync.integrations.harvest.client import HarvestClientError, build_session
from harvest_sync.integrations.harvest.registry import ExternalSourceRegistry, build_default_registry
from harvest_sync.models.external_relations import ALL, ExternalRelationResolver, HasExternalRelations
from harvest_sync.models.harvest import KEYS_BY_RESOURCE, HarvestRecord, model_for_key, relation_foreign_keys
from harvest_sync.repositories.harvest_records import (
    HarvestRepositoryError,
    SupabaseLocalStore,
    assert_harvest_table_exists,
    update_record,
)
from harvest_sync.utils.env import load_env

HOST_RESOURCES = sorted(
    resource for resource, key in KEYS_BY_RESOURCE.items() if issubclass(model_for_key(key), HasExternalRelations)
)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="load_external_relations",
        description="Fetch Harvest records by id and load their external relations.",
    )
    parser.add_argument("--resource", required=True, choices=HOST_RESOURCES, help="Harvest resource of the hosts.")
    parser.add_argument("--id", dest="ids", action="append", type=int, default=[], help="Harvest id. Repeatable.")
    parser.add_argument(
        "--relations",
        default=ALL,
        help="Comma-separated relation names to load (default: all declared relations).",
    )
    parser.add_argument(
        "--persist",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Save fetched relations and hosts to Supabase (when the database is in use).",
    )
    parser.add_argument("--dry-run", action="store_true", help="Run without reading from or writing to Supabase.")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging.")
    args = parser.parse_args(argv)
    if not args.ids:
        parser.error("at least one --id is required")
    return args


def parse_relations(value: str) -> str | list[str]:
    if value.strip() == ALL:
        return ALL
    return [part.strip() for part in value.split(",") if part.strip()]


def _build_config(args: argparse.Namespace) -> HarvestConfig:
    config = load_harvest_config()
    if args.dry_run:
        config = replace(config, uses_database=False)
    return config


def _load_host(
    key: str,
    external_id: int,
    *,
    registry: ExternalSourceRegistry,
    store: SupabaseLocalStore | None,
) -> tuple[HarvestRecord | None, bool]:
    if store is not None:
        local = store.find_by_external_id(key, external_id)
        if local is not None:
            return local, True
    fetched = registry.lookup(key)(external_id)
    return (fetched[0] if fetched else None), False


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv or sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    load_env()
    config = _build_config(args)
    key = KEYS_BY_RESOURCE[args.resource]
    relations = parse_relations(args.relations)

    registry = build_default_registry(config=config, session=build_session(config))
    store: SupabaseLocalStore | None = None
    if config.uses_database:
        db = create_supabase_admin_client()
        assert_harvest_table_exists(db, model_for_key(key).table)
        store = SupabaseLocalStore(db)
    resolver = ExternalRelationResolver(registry, config, store)

    failures: list[str] = []
    for external_id in args.ids:
        try:
            host, is_local = _load_host(key, external_id, registry=registry, store=store)
            if host is None:
                print(f"NOT FOUND {args.resource} external_id={external_id}")
                failures.append(str(external_id))
                continue

            for result in resolver.resolve(host, relations, persist=args.persist):
                detail = result.eligibility.value if result.canonical_key is None else result.canonical_key
                print(f"{args.resource}={external_id} {result.name}: {result.outcome.value} ({detail})")

            if store is not None and args.persist:
                if is_local and host.id:
                    update_record(store.db, host.table, host.id, relation_foreign_keys(host))
                else:
                    store.save(key, host)
        except (HarvestClientError, HarvestRepositoryError, LookupError) as exc:
            print(f"FAILED {args.resource} external_id={external_id}: {exc}", file=sys.stderr)
            failures.append(str(external_id))

    print(f"Done. hosts={len(args.ids)} failed={len(failures)}")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())

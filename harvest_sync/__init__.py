"""
Shared Harvest sync library code.

This package mirrors records from the Harvest v2 API and resolves the
"external relations" between them: associations that are known only by a
Harvest id until they are looked up locally or fetched from the API.

CLI entrypoints live in `scripts/` and import from `harvest_sync` rather than
the other way around.
"""

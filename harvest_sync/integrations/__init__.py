"""
External system integrations (Harvest).

API clients live under this namespace so they stay decoupled from the CLI
entrypoints in `scripts/`.
"""

"""
Harvest v2 API client and the external source registry built on it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from harvest_sync.integrations.harvest.client import (
        HarvestClientError,
        build_session,
        fetch_resource,
        list_resources,
    )
    from harvest_sync.integrations.harvest.registry import (
        ExternalSourceNotRegisteredError,
        ExternalSourceRegistry,
        build_default_registry,
    )

_CLIENT_NAMES = {"HarvestClientError", "build_session", "fetch_resource", "list_resources"}
_REGISTRY_NAMES = {"ExternalSourceNotRegisteredError", "ExternalSourceRegistry", "build_default_registry"}

__all__ = sorted(_CLIENT_NAMES | _REGISTRY_NAMES)


def __getattr__(name: str):
    if name in _CLIENT_NAMES:
        from harvest_sync.integrations.harvest import client

        return getattr(client, name)
    if name in _REGISTRY_NAMES:
        from harvest_sync.integrations.harvest import registry

        return getattr(registry, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

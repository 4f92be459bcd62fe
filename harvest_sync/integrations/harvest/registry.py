from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Sequence

import requests

from harvest_sync.config import HarvestConfig, load_harvest_config
from harvest_sync.integrations.harvest.client import build_session, fetch_resource
from harvest_sync.models.harvest import MODELS_BY_KEY, HarvestRecord

ExternalLookup = Callable[[Any], Sequence[Any]]


class ExternalSourceNotRegisteredError(LookupError):
    def __init__(self, relation_key: str) -> None:
        super().__init__(f"No external source is registered for relation {relation_key!r}.")
        self.relation_key = relation_key


class ExternalSourceRegistry:
    """Canonical relation key -> function fetching records by Harvest id."""

    def __init__(self, lookups: Mapping[str, ExternalLookup] | None = None) -> None:
        self._lookups: dict[str, ExternalLookup] = dict(lookups or {})

    def register(self, relation_key: str, lookup: ExternalLookup) -> None:
        self._lookups[relation_key] = lookup

    def lookup(self, relation_key: str) -> ExternalLookup:
        try:
            return self._lookups[relation_key]
        except KeyError:
            raise ExternalSourceNotRegisteredError(relation_key) from None

    def keys(self) -> Iterable[str]:
        return self._lookups.keys()

    def __contains__(self, relation_key: object) -> bool:
        return relation_key in self._lookups


def make_resource_lookup(
    model: type[HarvestRecord],
    *,
    config: HarvestConfig,
    session: requests.Session,
) -> ExternalLookup:
    def lookup(external_id: Any) -> list[HarvestRecord]:
        payload = fetch_resource(model.resource, external_id, config=config, session=session)
        if not payload:
            return []
        return [model.from_payload(payload)]

    lookup.__name__ = f"lookup_{model.resource}"
    return lookup


def build_default_registry(
    *,
    config: HarvestConfig | None = None,
    session: requests.Session | None = None,
) -> ExternalSourceRegistry:
    """
    Registry with one Harvest API lookup per known model.

    All lookups share a single authenticated session.
    """

    config = config or load_harvest_config()
    session = session or build_session(config)
    registry = ExternalSourceRegistry()
    for key, model in MODELS_BY_KEY.items():
        registry.register(key, make_resource_lookup(model, config=config, session=session))
    return registry

"""
Lazy loading of "external relations".

An external relation is an association known only by the Harvest id of the
related record (`external_<relation>_id`). Loading it either reuses a record
already stored locally under that Harvest id, or fetches the record from the
Harvest API (optionally saving it) and attaches it to the host.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Iterable, Mapping, Protocol, Sequence, Union

from harvest_sync.utils.text import snake_case

logger = logging.getLogger(__name__)

ALL = "*"

RelationSpec = Union[Mapping[str, str], Iterable[str]]


class Eligibility(str, Enum):
    ELIGIBLE = "eligible"
    UNDECLARED = "undeclared"
    MISSING_EXTERNAL_ID = "missing_external_id"
    ALREADY_ESTABLISHED = "already_established"


class Outcome(str, Enum):
    SKIPPED = "skipped"
    LOCAL = "local"
    FETCHED = "fetched"
    PERSISTED = "persisted"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RelationDeclaration:
    """A declared relation slot (`name`) and the key of the record type behind it."""

    name: str
    canonical_key: str

    @property
    def is_alias(self) -> bool:
        return self.name != self.canonical_key


@dataclass(frozen=True)
class RelationResolution:
    name: str
    canonical_key: str | None
    outcome: Outcome
    eligibility: Eligibility
    entity: Any = None


class ExternalSources(Protocol):
    def lookup(self, relation_key: str) -> Callable[[Any], Sequence[Any]]: ...


class LocalStore(Protocol):
    def find_by_external_id(self, relation_key: str, external_id: Any) -> Any | None: ...

    def save(self, relation_key: str, entity: Any) -> Any: ...


class HostEntity(Protocol):
    def get_external_relations(self) -> RelationSpec: ...

    def associate_external(self, name: str, entity: Any) -> None: ...


def normalize_declarations(declared: RelationSpec) -> tuple[RelationDeclaration, ...]:
    """
    Turn `{"alias": "key"}` or `["name", ...]` into declarations.

    Bare names map to themselves.
    """

    if isinstance(declared, Mapping):
        return tuple(RelationDeclaration(str(alias), str(key)) for alias, key in declared.items())
    if isinstance(declared, str):
        return (RelationDeclaration(declared, declared),)
    return tuple(RelationDeclaration(str(name), str(name)) for name in declared)


def external_id_field(name: str) -> str:
    return f"external_{snake_case(name)}_id"


def foreign_key_field(name: str) -> str:
    return f"{snake_case(name)}_id"


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def requested_names(relations: str | Iterable[str], declarations: Sequence[RelationDeclaration]) -> list[str]:
    if relations == ALL:
        names: Iterable[str] = [d.name for d in declarations]
    elif isinstance(relations, str):
        names = [relations]
    else:
        names = relations
    # dict.fromkeys keeps first-seen order.
    return list(dict.fromkeys(str(n) for n in names))


def check_eligibility(host: Any, name: str, declarations: Sequence[RelationDeclaration]) -> Eligibility:
    declared = any(name in (d.name, d.canonical_key) for d in declarations)
    if not declared:
        return Eligibility.UNDECLARED
    if _is_blank(getattr(host, external_id_field(name), None)):
        return Eligibility.MISSING_EXTERNAL_ID
    # The foreign key is the source of truth: a relation object attached
    # without a local id (unsaved remote record) is re-resolved.
    if getattr(host, foreign_key_field(name), None) is not None:
        return Eligibility.ALREADY_ESTABLISHED
    return Eligibility.ELIGIBLE


def resolve_canonical_key(name: str, declarations: Sequence[RelationDeclaration]) -> str:
    if any(d.canonical_key == name for d in declarations):
        return name
    for declaration in declarations:
        if declaration.name == name:
            return declaration.canonical_key
    raise LookupError(f"Relation {name!r} is not declared.")


class ExternalRelationResolver:
    """
    Resolves a host's external relations against a local store and the Harvest API.

    Collaborators are injected: `sources` maps canonical relation keys to
    lookup functions, `config.uses_database` gates the local store, and `store`
    is required only when that flag is on.
    """

    def __init__(self, sources: ExternalSources, config: Any, store: LocalStore | None = None) -> None:
        self.sources = sources
        self.config = config
        self.store = store

    def _uses_database(self) -> bool:
        return bool(getattr(self.config, "uses_database", False))

    def _require_store(self) -> LocalStore:
        if self.store is None:
            raise RuntimeError("uses_database is enabled but no local store was configured.")
        return self.store

    def load_external(self, host: HostEntity, relations: str | Iterable[str] = ALL, *, persist: bool = True) -> Any:
        self.resolve(host, relations, persist=persist)
        return host

    def resolve(
        self,
        host: HostEntity,
        relations: str | Iterable[str] = ALL,
        *,
        persist: bool = True,
    ) -> list[RelationResolution]:
        """
        Resolve the requested relations in order and report what happened to each.

        Errors from the store, the registry, or the Harvest client propagate;
        relations resolved before the failure stay associated.
        """

        declarations = normalize_declarations(host.get_external_relations())
        results: list[RelationResolution] = []
        for name in requested_names(relations, declarations):
            eligibility = check_eligibility(host, name, declarations)
            if eligibility is not Eligibility.ELIGIBLE:
                logger.debug("Skipping relation %s on %s: %s", name, type(host).__name__, eligibility.value)
                results.append(RelationResolution(name, None, Outcome.SKIPPED, eligibility))
                continue
            key = resolve_canonical_key(name, declarations)
            results.append(self._resolve_relation(host, name, key, persist=persist))
        return results

    def _resolve_relation(self, host: HostEntity, name: str, key: str, *, persist: bool) -> RelationResolution:
        external_id = getattr(host, external_id_field(name))
        uses_database = self._uses_database()

        if uses_database:
            existing = self._require_store().find_by_external_id(key, external_id)
            if existing is not None:
                host.associate_external(name, existing)
                logger.info("Attached local %s (external_id=%s) as %s", key, external_id, name)
                return RelationResolution(name, key, Outcome.LOCAL, Eligibility.ELIGIBLE, existing)

        fetch = self.sources.lookup(key)
        entity = next(iter(fetch(external_id) or ()), None)
        if entity is None:
            logger.warning("Harvest returned no %s for external_id=%s; leaving %s unset", key, external_id, name)
            return RelationResolution(name, key, Outcome.NOT_FOUND, Eligibility.ELIGIBLE)

        outcome = Outcome.FETCHED
        if persist and uses_database:
            self._require_store().save(key, entity)
            outcome = Outcome.PERSISTED

        host.associate_external(name, entity)
        logger.info("Attached %s %s (external_id=%s) as %s", outcome.value, key, external_id, name)
        return RelationResolution(name, key, outcome, Eligibility.ELIGIBLE, entity)


class HasExternalRelations:
    """
    Mixin for models whose relations are identified by Harvest ids.

    Subclasses declare `external_relations` either as a list of names or as a
    mapping of relation slot -> canonical key (e.g. `{"creator": "user"}`).
    """

    external_relations: ClassVar[RelationSpec] = ()

    def get_external_relations(self) -> RelationSpec:
        return self.external_relations

    def associate_external(self, name: str, entity: Any) -> None:
        setattr(self, name, entity)
        setattr(self, foreign_key_field(name), getattr(entity, "id", None))

    def load_external(
        self,
        resolver: ExternalRelationResolver,
        relations: str | Iterable[str] = ALL,
        persist: bool = True,
    ):
        resolver.load_external(self, relations, persist=persist)
        return self

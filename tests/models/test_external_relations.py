from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

import pytest

from harvest_sync.config import HarvestConfig
from harvest_sync.integrations.harvest.registry import ExternalSourceNotRegisteredError, ExternalSourceRegistry
from harvest_sync.models.external_relations import (
    ALL,
    Eligibility,
    ExternalRelationResolver,
    HasExternalRelations,
    Outcome,
    RelationDeclaration,
    check_eligibility,
    normalize_declarations,
    requested_names,
    resolve_canonical_key,
)


@dataclass
class _Record:
    external_id: int
    id: str | None = None


@dataclass
class _Book(HasExternalRelations):
    external_relations: ClassVar[dict[str, str]] = {"author": "author", "pub": "publisher"}

    external_author_id: int | None = None
    author_id: str | None = None
    author: Any = None

    external_pub_id: int | None = None
    pub_id: str | None = None
    pub: Any = None


@dataclass
class _Shipment(HasExternalRelations):
    external_relations: ClassVar[tuple[str, ...]] = ("timeEntry",)

    external_time_entry_id: int | None = None
    time_entry_id: str | None = None
    timeEntry: Any = None


class _FakeSources:
    def __init__(self, records: dict[str, list[Any]] | None = None, events: list[str] | None = None) -> None:
        self.records = records or {}
        self.calls: list[tuple[str, Any]] = []
        self.events = events if events is not None else []

    def lookup(self, relation_key: str):
        def fetch(external_id: Any) -> list[Any]:
            self.calls.append((relation_key, external_id))
            self.events.append(f"fetch:{relation_key}")
            return [r for r in self.records.get(relation_key, []) if r.external_id == external_id]

        return fetch


class _FakeStore:
    def __init__(self, local: dict[tuple[str, Any], Any] | None = None, events: list[str] | None = None) -> None:
        self.local = local or {}
        self.find_calls: list[tuple[str, Any]] = []
        self.saved: list[tuple[str, Any]] = []
        self.events = events if events is not None else []

    def find_by_external_id(self, relation_key: str, external_id: Any) -> Any | None:
        self.find_calls.append((relation_key, external_id))
        return self.local.get((relation_key, external_id))

    def save(self, relation_key: str, entity: Any) -> Any:
        self.saved.append((relation_key, entity))
        self.events.append(f"save:{relation_key}")
        entity.id = f"local-{relation_key}-{entity.external_id}"
        return entity


class _RecordingBook(_Book):
    def associate_external(self, name: str, entity: Any) -> None:
        self.events.append(f"associate:{name}")
        super().associate_external(name, entity)


def _resolver(
    *,
    uses_database: bool,
    sources: _FakeSources | ExternalSourceRegistry | None = None,
    store: _FakeStore | None = None,
) -> ExternalRelationResolver:
    return ExternalRelationResolver(
        sources or _FakeSources(),
        HarvestConfig(uses_database=uses_database),
        store,
    )


def test_load_all_resolves_only_relations_with_external_ids() -> None:
    sources = _FakeSources({"author": [_Record(7)], "publisher": [_Record(9)]})
    book = _Book(external_author_id=7, external_pub_id=None)

    result = _resolver(uses_database=False, sources=sources).load_external(book, ALL)

    assert result is book
    assert sources.calls == [("author", 7)]
    assert book.author == _Record(7)
    assert book.pub is None
    assert book.pub_id is None


def test_load_single_relation_with_foreign_key_is_noop() -> None:
    sources = _FakeSources({"author": [_Record(7)]})
    book = _Book(external_author_id=7, author_id="3")

    results = _resolver(uses_database=False, sources=sources).resolve(book, "author")

    assert sources.calls == []
    assert book.author_id == "3"
    assert book.author is None
    assert [(r.outcome, r.eligibility) for r in results] == [(Outcome.SKIPPED, Eligibility.ALREADY_ESTABLISHED)]


def test_relations_without_external_id_are_left_untouched() -> None:
    sources = _FakeSources({"author": [_Record(7)], "publisher": [_Record(9)]})
    marker = object()
    book = _Book(author=marker)

    results = _resolver(uses_database=False, sources=sources).resolve(book)

    assert sources.calls == []
    assert book.author is marker
    assert book.pub is None
    assert {r.name: r.eligibility for r in results} == {
        "author": Eligibility.MISSING_EXTERNAL_ID,
        "pub": Eligibility.MISSING_EXTERNAL_ID,
    }


def test_database_disabled_never_consults_local_store() -> None:
    sources = _FakeSources({"author": [_Record(7)]})
    store = _FakeStore({("author", 7): _Record(7, id="local-author")})
    book = _Book(external_author_id=7)

    _resolver(uses_database=False, sources=sources, store=store).load_external(book)

    assert store.find_calls == []
    assert store.saved == []
    assert sources.calls == [("author", 7)]
    assert book.author_id is None


def test_local_match_skips_remote_fetch() -> None:
    sources = _FakeSources({"author": [_Record(7)]})
    local_author = _Record(7, id="local-author")
    store = _FakeStore({("author", 7): local_author})
    book = _Book(external_author_id=7)

    results = _resolver(uses_database=True, sources=sources, store=store).resolve(book, ["author"])

    assert sources.calls == []
    assert book.author is local_author
    assert book.author_id == "local-author"
    assert results[0].outcome is Outcome.LOCAL


def test_fetched_record_is_saved_once_before_association() -> None:
    events: list[str] = []
    sources = _FakeSources({"author": [_Record(7)]}, events=events)
    store = _FakeStore(events=events)
    book = _RecordingBook(external_author_id=7)
    book.events = events

    results = _resolver(uses_database=True, sources=sources, store=store).resolve(book, "author", persist=True)

    assert len(store.saved) == 1
    assert store.saved[0][0] == "author"
    assert events == ["fetch:author", "save:author", "associate:author"]
    assert book.author_id == "local-author-7"
    assert results[0].outcome is Outcome.PERSISTED


def test_persist_false_associates_without_saving() -> None:
    sources = _FakeSources({"author": [_Record(7)]})
    store = _FakeStore()
    book = _Book(external_author_id=7)

    results = _resolver(uses_database=True, sources=sources, store=store).resolve(book, "author", persist=False)

    assert store.find_calls == [("author", 7)]
    assert store.saved == []
    assert book.author == _Record(7)
    assert book.author_id is None
    assert results[0].outcome is Outcome.FETCHED


def test_alias_uses_canonical_key_and_fills_alias_slot() -> None:
    sources = _FakeSources({"publisher": [_Record(9)]})
    store = _FakeStore()
    book = _Book(external_pub_id=9)

    results = _resolver(uses_database=True, sources=sources, store=store).resolve(book, "pub")

    assert store.find_calls == [("publisher", 9)]
    assert sources.calls == [("publisher", 9)]
    assert book.pub == _Record(9, id="local-publisher-9")
    assert book.pub_id == "local-publisher-9"
    assert results[0].canonical_key == "publisher"


def test_remote_not_found_leaves_relation_unset() -> None:
    sources = _FakeSources({"author": []})
    store = _FakeStore()
    book = _Book(external_author_id=7)

    results = _resolver(uses_database=True, sources=sources, store=store).resolve(book, "author")

    assert store.saved == []
    assert book.author is None
    assert book.author_id is None
    assert results[0].outcome is Outcome.NOT_FOUND


def test_missing_source_propagates_and_keeps_earlier_relations() -> None:
    registry = ExternalSourceRegistry({"author": lambda external_id: [_Record(external_id)]})
    book = _Book(external_author_id=7, external_pub_id=9)

    with pytest.raises(ExternalSourceNotRegisteredError) as excinfo:
        _resolver(uses_database=False, sources=registry).load_external(book, ["author", "pub"])

    assert excinfo.value.relation_key == "publisher"
    assert book.author == _Record(7)
    assert book.pub is None


def test_undeclared_relation_is_skipped() -> None:
    sources = _FakeSources()
    book = _Book(external_author_id=7)

    results = _resolver(uses_database=False, sources=sources).resolve(book, "editor")

    assert sources.calls == []
    assert results[0].eligibility is Eligibility.UNDECLARED


def test_relation_set_without_foreign_key_is_resolved_again() -> None:
    sources = _FakeSources({"author": [_Record(7)]})
    book = _Book(external_author_id=7, author=_Record(1))

    _resolver(uses_database=False, sources=sources).load_external(book, "author")

    assert sources.calls == [("author", 7)]
    assert book.author == _Record(7)


def test_duplicate_names_are_processed_once() -> None:
    sources = _FakeSources({"author": [_Record(7)]})
    book = _Book(external_author_id=7)

    results = _resolver(uses_database=False, sources=sources).resolve(book, ["author", "author"])

    assert len(results) == 1
    assert sources.calls == [("author", 7)]


def test_database_enabled_without_store_raises() -> None:
    book = _Book(external_author_id=7)

    with pytest.raises(RuntimeError, match="no local store"):
        _resolver(uses_database=True, sources=_FakeSources()).load_external(book)


def test_mixin_load_external_returns_host_for_chaining() -> None:
    sources = _FakeSources({"author": [_Record(7)]})
    book = _Book(external_author_id=7)

    assert book.load_external(_resolver(uses_database=False, sources=sources), "author", False) is book
    assert book.author == _Record(7)


def test_camel_case_relation_uses_snake_case_fields() -> None:
    sources = _FakeSources({"timeEntry": [_Record(11)]})
    shipment = _Shipment(external_time_entry_id=11)

    _resolver(uses_database=False, sources=sources).load_external(shipment)

    assert shipment.timeEntry == _Record(11)
    assert check_eligibility(shipment, "timeEntry", normalize_declarations(shipment.external_relations)) is (
        Eligibility.ELIGIBLE
    )


def test_normalize_declarations_accepts_names_and_mappings() -> None:
    assert normalize_declarations(["user", "client"]) == (
        RelationDeclaration("user", "user"),
        RelationDeclaration("client", "client"),
    )
    declarations = normalize_declarations({"creator": "user"})
    assert declarations == (RelationDeclaration("creator", "user"),)
    assert declarations[0].is_alias is True


def test_canonical_key_prefers_declared_key_over_alias() -> None:
    declarations = normalize_declarations({"author": "author", "pub": "publisher"})
    assert resolve_canonical_key("author", declarations) == "author"
    assert resolve_canonical_key("pub", declarations) == "publisher"
    assert resolve_canonical_key("publisher", declarations) == "publisher"
    with pytest.raises(LookupError):
        resolve_canonical_key("editor", declarations)


def test_requested_names_expands_all_in_declaration_order() -> None:
    declarations = normalize_declarations({"author": "author", "pub": "publisher"})
    assert requested_names(ALL, declarations) == ["author", "pub"]
    assert requested_names("pub", declarations) == ["pub"]

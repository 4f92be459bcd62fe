from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Mapping

from harvest_sync.models.external_relations import HasExternalRelations, foreign_key_field, normalize_declarations

RELATION_SLOT = {"relation": True}


def _relation_slot() -> Any:
    return field(default=None, repr=False, compare=False, metadata=RELATION_SLOT)


def _ref_id(payload: Mapping[str, Any], key: str) -> int | None:
    ref = payload.get(key)
    if isinstance(ref, Mapping):
        value = ref.get("id")
        return value if isinstance(value, int) else None
    return None


@dataclass
class HarvestRecord:
    """
    A record mirrored from the Harvest v2 API.

    `external_id` is the Harvest id; `id` is the local primary key and stays
    None until the record is saved.
    """

    resource: ClassVar[str] = ""
    table: ClassVar[str] = ""

    external_id: int | None = None
    id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def _column_names(cls) -> list[str]:
        return [f.name for f in fields(cls) if not f.metadata.get("relation")]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]):
        """Build a record from a Harvest API object, keeping the raw payload."""

        values: dict[str, Any] = {"external_id": payload.get("id"), "payload": dict(payload)}
        for name in cls._column_names():
            if name in ("id", "external_id", "payload"):
                continue
            if name.startswith("external_") and name.endswith("_id"):
                values[name] = _ref_id(payload, name[len("external_") : -len("_id")])
            elif name in payload and not isinstance(payload[name], Mapping):
                values[name] = payload[name]
        return cls(**values)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]):
        columns = set(cls._column_names())
        values = {key: value for key, value in row.items() if key in columns}
        if values.get("id") is not None:
            values["id"] = str(values["id"])
        if values.get("payload") is None:
            values.pop("payload", None)
        return cls(**values)

    def to_row(self) -> dict[str, Any]:
        row = {name: getattr(self, name) for name in self._column_names()}
        if row.get("id") is None:
            row.pop("id", None)
        return row


@dataclass
class HarvestUser(HarvestRecord):
    resource: ClassVar[str] = "users"
    table: ClassVar[str] = "users"

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    timezone: str | None = None
    is_active: bool | None = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass
class HarvestClient(HarvestRecord):
    resource: ClassVar[str] = "clients"
    table: ClassVar[str] = "clients"

    name: str | None = None
    currency: str | None = None
    is_active: bool | None = None


@dataclass
class HarvestTask(HarvestRecord):
    resource: ClassVar[str] = "tasks"
    table: ClassVar[str] = "tasks"

    name: str | None = None
    billable_by_default: bool | None = None
    default_hourly_rate: float | None = None
    is_active: bool | None = None


@dataclass
class HarvestContact(HarvestRecord, HasExternalRelations):
    resource: ClassVar[str] = "contacts"
    table: ClassVar[str] = "contacts"
    external_relations: ClassVar[tuple[str, ...]] = ("client",)

    first_name: str | None = None
    last_name: str | None = None
    title: str | None = None
    email: str | None = None

    external_client_id: int | None = None
    client_id: str | None = None
    client: HarvestClient | None = _relation_slot()


@dataclass
class HarvestProject(HarvestRecord, HasExternalRelations):
    resource: ClassVar[str] = "projects"
    table: ClassVar[str] = "projects"
    external_relations: ClassVar[tuple[str, ...]] = ("client",)

    name: str | None = None
    code: str | None = None
    is_active: bool | None = None
    is_billable: bool | None = None
    budget: float | None = None

    external_client_id: int | None = None
    client_id: str | None = None
    client: HarvestClient | None = _relation_slot()


@dataclass
class HarvestInvoice(HarvestRecord, HasExternalRelations):
    resource: ClassVar[str] = "invoices"
    table: ClassVar[str] = "invoices"
    external_relations: ClassVar[dict[str, str]] = {"client": "client", "creator": "user"}

    number: str | None = None
    state: str | None = None
    subject: str | None = None
    currency: str | None = None
    amount: float | None = None
    due_amount: float | None = None
    issue_date: str | None = None
    due_date: str | None = None

    external_client_id: int | None = None
    client_id: str | None = None
    client: HarvestClient | None = _relation_slot()

    external_creator_id: int | None = None
    creator_id: str | None = None
    creator: HarvestUser | None = _relation_slot()


@dataclass
class HarvestEstimate(HarvestRecord, HasExternalRelations):
    resource: ClassVar[str] = "estimates"
    table: ClassVar[str] = "estimates"
    external_relations: ClassVar[dict[str, str]] = {"client": "client", "creator": "user"}

    number: str | None = None
    state: str | None = None
    subject: str | None = None
    amount: float | None = None
    issue_date: str | None = None

    external_client_id: int | None = None
    client_id: str | None = None
    client: HarvestClient | None = _relation_slot()

    external_creator_id: int | None = None
    creator_id: str | None = None
    creator: HarvestUser | None = _relation_slot()


@dataclass
class HarvestTimeEntry(HarvestRecord, HasExternalRelations):
    resource: ClassVar[str] = "time_entries"
    table: ClassVar[str] = "time_entries"
    external_relations: ClassVar[tuple[str, ...]] = ("user", "client", "project", "task", "invoice")

    spent_date: str | None = None  # YYYY-MM-DD
    hours: float | None = None
    notes: str | None = None
    started_time: str | None = None
    ended_time: str | None = None
    is_locked: bool | None = None
    is_running: bool | None = None
    billable: bool | None = None

    external_user_id: int | None = None
    user_id: str | None = None
    user: HarvestUser | None = _relation_slot()

    external_client_id: int | None = None
    client_id: str | None = None
    client: HarvestClient | None = _relation_slot()

    external_project_id: int | None = None
    project_id: str | None = None
    project: HarvestProject | None = _relation_slot()

    external_task_id: int | None = None
    task_id: str | None = None
    task: HarvestTask | None = _relation_slot()

    external_invoice_id: int | None = None
    invoice_id: str | None = None
    invoice: HarvestInvoice | None = _relation_slot()


# Canonical relation key -> model type.
MODELS_BY_KEY: dict[str, type[HarvestRecord]] = {
    "user": HarvestUser,
    "client": HarvestClient,
    "contact": HarvestContact,
    "project": HarvestProject,
    "task": HarvestTask,
    "invoice": HarvestInvoice,
    "estimate": HarvestEstimate,
    "time_entry": HarvestTimeEntry,
}

KEYS_BY_RESOURCE: dict[str, str] = {model.resource: key for key, model in MODELS_BY_KEY.items()}


def model_for_key(relation_key: str) -> type[HarvestRecord]:
    try:
        return MODELS_BY_KEY[relation_key]
    except KeyError:
        raise LookupError(f"No Harvest model is registered for relation {relation_key!r}.") from None


def relation_foreign_keys(record: HarvestRecord) -> dict[str, Any]:
    """Foreign-key columns of a host record, for patching the stored row after loading relations."""

    if not isinstance(record, HasExternalRelations):
        return {}
    return {
        foreign_key_field(d.name): getattr(record, foreign_key_field(d.name), None)
        for d in normalize_declarations(record.get_external_relations())
    }

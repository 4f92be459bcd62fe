"""
Domain models shared across scripts and services.
"""

from harvest_sync.models.external_relations import (
    ALL,
    Eligibility,
    ExternalRelationResolver,
    HasExternalRelations,
    Outcome,
    RelationDeclaration,
    RelationResolution,
)
from harvest_sync.models.harvest import (
    MODELS_BY_KEY,
    HarvestClient,
    HarvestContact,
    HarvestEstimate,
    HarvestInvoice,
    HarvestProject,
    HarvestRecord,
    HarvestTask,
    HarvestTimeEntry,
    HarvestUser,
)

__all__ = [
    "ALL",
    "MODELS_BY_KEY",
    "Eligibility",
    "ExternalRelationResolver",
    "HarvestClient",
    "HarvestContact",
    "HarvestEstimate",
    "HarvestInvoice",
    "HarvestProject",
    "HarvestRecord",
    "HarvestTask",
    "HarvestTimeEntry",
    "HarvestUser",
    "HasExternalRelations",
    "Outcome",
    "RelationDeclaration",
    "RelationResolution",
]

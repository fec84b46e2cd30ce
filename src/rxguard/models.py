"""Data model for interaction checks and the interaction catalog.

Every enum here is closed: code that branches on a severity, interaction
type, check status or sync status handles every member explicitly.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, SecretStr

T = TypeVar("T")


def utcnow() -> datetime:
    """Timezone-aware current time; every timestamp in the package uses it."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    """Clinical severity of a finding, highest risk first."""

    CONTRAINDICATED = "CONTRAINDICATED"
    SEVERE = "SEVERE"
    MODERATE = "MODERATE"
    MILD = "MILD"
    UNKNOWN = "UNKNOWN"


class InteractionType(str, Enum):
    MAJOR = "MAJOR"
    MODERATE = "MODERATE"
    MINOR = "MINOR"
    ALLERGY = "ALLERGY"


class CheckStatus(str, Enum):
    """Worst-case classification of a completed check."""

    PASSED = "PASSED"
    WARNINGS = "WARNINGS"
    CRITICAL = "CRITICAL"


class SyncStatus(str, Enum):
    IDLE = "IDLE"
    SYNCING = "SYNCING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class PrescriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISCONTINUED = "DISCONTINUED"


# ---------------------------------------------------------------------------
# Collaborator records (owned by the host, read-only here)
# ---------------------------------------------------------------------------


class Medication(BaseModel):
    """A medication as returned by the medication catalog."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    generic_name: str | None = None
    ingredient_class_tags: tuple[str, ...] = ()
    is_active: bool = True


class Prescription(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    patient_id: str
    medication_id: str
    status: PrescriptionStatus = PrescriptionStatus.ACTIVE
    prescribed_date: datetime = Field(default_factory=utcnow)
    prescriber_name: str = "Unknown prescriber"


class Patient(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    allergies: tuple[str, ...] = ()
    medical_history: str = ""


# ---------------------------------------------------------------------------
# Interaction catalog
# ---------------------------------------------------------------------------


class KnownInteraction(BaseModel):
    """A catalogued interaction for an unordered pair of medications."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    drug_a_id: str
    drug_b_id: str
    interaction_type: InteractionType
    severity: Severity
    description: str
    clinical_effects: str | None = None
    management_advice: str | None = None
    source: str = "MANUAL"
    created_at: datetime = Field(default_factory=utcnow)
    last_updated: datetime = Field(default_factory=utcnow)

    @property
    def pair(self) -> frozenset[str]:
        return frozenset((self.drug_a_id, self.drug_b_id))


class InteractionCreate(BaseModel):
    """Fields accepted when curating a new catalog record."""

    drug_a_id: str
    drug_b_id: str
    interaction_type: InteractionType
    severity: Severity
    description: str
    clinical_effects: str | None = None
    management_advice: str | None = None
    source: str = "MANUAL"


class InteractionUpdate(BaseModel):
    """Partial update of a catalog record; unset fields are left alone."""

    interaction_type: InteractionType | None = None
    severity: Severity | None = None
    description: str | None = None
    clinical_effects: str | None = None
    management_advice: str | None = None
    source: str | None = None


# ---------------------------------------------------------------------------
# Check results
# ---------------------------------------------------------------------------


class DrugRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    generic_name: str | None = None

    @classmethod
    def of(cls, medication: Medication) -> DrugRef:
        return cls(
            id=medication.id,
            name=medication.name,
            generic_name=medication.generic_name,
        )


class CandidateInteraction(BaseModel):
    """A finding produced by a check.

    Catalog findings carry the catalog record's id and source; heuristic
    findings carry the rule name as source. Allergy findings have no
    ``drug_b``.
    """

    model_config = ConfigDict(frozen=True)

    drug_a: DrugRef
    drug_b: DrugRef | None
    interaction_type: InteractionType
    severity: Severity
    description: str
    clinical_effects: str | None = None
    management_advice: str | None = None
    source: str
    interaction_id: str | None = None
    last_updated: datetime | None = None


class InteractionSummary(BaseModel):
    total: int = 0
    by_severity: dict[Severity, int] = Field(
        default_factory=lambda: {s: 0 for s in Severity}
    )
    by_type: dict[InteractionType, int] = Field(
        default_factory=lambda: {t: 0 for t in InteractionType}
    )
    critical_alerts: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class InteractionCheckResult(BaseModel):
    """The immutable outcome of one check invocation.

    Findings are not exhaustive: an empty ``interactions`` list means no
    catalogued or heuristic evidence was found, not that the combination
    is safe.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    prescription_id: str | None = None
    patient_id: str | None = None
    medication_ids: tuple[str, ...]
    interactions: tuple[CandidateInteraction, ...]
    status: CheckStatus
    warnings: tuple[str, ...] = ()
    critical_alerts: tuple[str, ...] = ()
    checked_at: datetime = Field(default_factory=utcnow)
    checked_by: str = "system"


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class Page(BaseModel, Generic[T]):
    data: list[T]
    meta: PageMeta


class InteractionStatistics(BaseModel):
    total_interactions: int
    interactions_by_severity: dict[Severity, int]
    interactions_by_type: dict[InteractionType, int]
    recent_checks: dict[str, int]
    window_days: int
    generated_at: datetime


# ---------------------------------------------------------------------------
# External drug databases
# ---------------------------------------------------------------------------


class DrugDatabaseSource(BaseModel):
    """A configured external interaction data source."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str
    provider: str
    base_url: str
    credential: SecretStr | None = None
    configuration: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    last_sync_at: datetime | None = None
    sync_status: SyncStatus = SyncStatus.IDLE
    last_error: str | None = None


class SourceCreate(BaseModel):
    name: str
    provider: str
    base_url: str
    credential: SecretStr | None = None
    configuration: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class SourceUpdate(BaseModel):
    name: str | None = None
    provider: str | None = None
    base_url: str | None = None
    credential: SecretStr | None = None
    configuration: dict[str, Any] | None = None
    is_active: bool | None = None


class RawInteraction(BaseModel):
    """One interaction tuple as delivered by an external source."""

    model_config = ConfigDict(populate_by_name=True)

    drug_a_name: str = Field(alias="drugAName", min_length=1)
    drug_b_name: str = Field(alias="drugBName", min_length=1)
    interaction_type: InteractionType = Field(alias="type")
    severity: Severity
    description: str
    clinical_effects: str | None = Field(default=None, alias="clinicalEffects")
    management: str | None = None


class SyncResult(BaseModel):
    source_id: str
    source_name: str
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    synced_at: datetime = Field(default_factory=utcnow)


class SyncStatusReport(BaseModel):
    source_id: str
    source_name: str
    sync_status: SyncStatus
    last_sync_at: datetime | None
    last_error: str | None


class ExternalLookupResult(BaseModel):
    source_id: str
    source_name: str
    provider: str
    interactions: list[RawInteraction]


class DrugInfo(BaseModel):
    """Monograph summary for one drug as delivered by an external source."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    generic_name: str | None = Field(default=None, alias="genericName")
    drug_class: str | None = Field(default=None, alias="drugClass")
    indications: list[str] = Field(default_factory=list)
    contraindications: list[str] = Field(default_factory=list)
    side_effects: list[str] = Field(default_factory=list, alias="sideEffects")
    interactions: list[str] = Field(default_factory=list)


class DrugInfoResult(BaseModel):
    source_id: str
    source_name: str
    provider: str
    drug_info: DrugInfo

"""Interaction check orchestration.

InteractionsService is the entry point for callers. It resolves the
medication set for a prescription or an explicit id list, runs the
InteractionChecker, classifies the result, records it, and exposes
catalog maintenance and statistics.

A check either completes and returns a full InteractionCheckResult or
raises a named error. There are no partial results.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from rxguard.checker import InteractionChecker, get_interaction_summary
from rxguard.collaborators import MedicationCatalog, PrescriptionStore
from rxguard.config import HISTORY_LIMIT, STATS_WINDOW_DAYS
from rxguard.errors import NotFoundError, ValidationError
from rxguard.lookup import InteractionCatalog, check_paging, paginate
from rxguard.models import (
    CandidateInteraction,
    CheckStatus,
    InteractionCheckResult,
    InteractionCreate,
    InteractionStatistics,
    InteractionType,
    InteractionUpdate,
    KnownInteraction,
    Medication,
    Page,
    PrescriptionStatus,
    Severity,
    utcnow,
)
from rxguard.severity import determine_check_status

logger = logging.getLogger(__name__)

# Prior prescriptions in these states are part of the patient's regimen.
HISTORY_STATUSES = frozenset({PrescriptionStatus.ACTIVE, PrescriptionStatus.COMPLETED})


class CheckHistory:
    """Append-only in-memory store of completed check results."""

    def __init__(self) -> None:
        self._results: list[InteractionCheckResult] = []

    async def add(self, result: InteractionCheckResult) -> None:
        self._results.append(result)

    async def since(self, cutoff: datetime) -> list[InteractionCheckResult]:
        return [r for r in self._results if r.checked_at >= cutoff]

    async def for_patient(self, patient_id: str) -> list[InteractionCheckResult]:
        return [r for r in self._results if r.patient_id == patient_id]


class InteractionsService:
    def __init__(
        self,
        medications: MedicationCatalog,
        prescriptions: PrescriptionStore,
        catalog: InteractionCatalog,
        checker: InteractionChecker | None = None,
        history: CheckHistory | None = None,
        history_limit: int = HISTORY_LIMIT,
        stats_window_days: int = STATS_WINDOW_DAYS,
    ) -> None:
        self.medications = medications
        self.prescriptions = prescriptions
        self.catalog = catalog
        self.checker = checker or InteractionChecker(catalog)
        self.history = history or CheckHistory()
        self.history_limit = history_limit
        self.stats_window_days = stats_window_days

    # --- Checks ---

    async def check_interactions_for_prescription(
        self, prescription_id: str
    ) -> InteractionCheckResult:
        """Check a prescription against the patient's recent prescriptions.

        The set is the prescription's own medication plus the medications of
        the patient's other active or completed prescriptions, newest first
        and capped at ``history_limit``.

        Raises:
            NotFoundError: If the prescription or any referenced medication
                does not exist.
        """
        prescription = await self.prescriptions.get_prescription(prescription_id)
        if prescription is None:
            raise NotFoundError("Prescription", prescription_id)

        prior = await self.prescriptions.get_patient_prescriptions(
            prescription.patient_id,
            statuses=HISTORY_STATUSES,
            exclude_id=prescription.id,
            limit=self.history_limit,
        )
        prior = sorted(prior, key=lambda p: p.prescribed_date, reverse=True)
        prior = prior[: self.history_limit]

        wanted = list(
            dict.fromkeys([prescription.medication_id, *(p.medication_id for p in prior)])
        )
        found = {m.id: m for m in await self.medications.get_medications(wanted)}
        missing = [i for i in wanted if i not in found]
        if missing:
            raise NotFoundError("Medications", missing)
        medications = [found[i] for i in wanted]

        interactions = await self.checker.check_interactions(medications)
        return await self._record(
            interactions,
            medications,
            prescription_id=prescription.id,
            patient_id=prescription.patient_id,
            checked_by=prescription.prescriber_name,
        )

    async def check_interactions_for_medications(
        self,
        medication_ids: Sequence[str],
        patient_id: str | None = None,
        checked_by: str = "system",
    ) -> InteractionCheckResult:
        """Check an explicit list of medications.

        Raises:
            ValidationError: If the list is empty.
            NotFoundError: If any id is not an active medication; the error
                names every missing id.
        """
        medications = await self._resolve_active(medication_ids)
        interactions = await self.checker.check_interactions(medications)
        return await self._record(
            interactions, medications, patient_id=patient_id, checked_by=checked_by
        )

    async def check_interactions_for_patient(
        self, medication_ids: Sequence[str], patient_id: str
    ) -> list[CandidateInteraction]:
        """Drug-drug and allergy findings for a patient; not recorded."""
        medications = await self._resolve_active(medication_ids)
        patient = await self.prescriptions.get_patient(patient_id)
        if patient is None:
            raise NotFoundError("Patient", patient_id)
        return await self.checker.check_interactions_for_patient(medications, patient)

    async def _resolve_active(self, medication_ids: Sequence[str]) -> list[Medication]:
        if not medication_ids:
            raise ValidationError("At least one medication id is required")

        wanted = list(dict.fromkeys(medication_ids))
        found = {
            m.id: m for m in await self.medications.get_medications(wanted) if m.is_active
        }
        missing = [i for i in wanted if i not in found]
        if missing:
            raise NotFoundError("Medications", missing)
        return [found[i] for i in wanted]

    async def _record(
        self,
        interactions: list[CandidateInteraction],
        medications: list[Medication],
        prescription_id: str | None = None,
        patient_id: str | None = None,
        checked_by: str = "system",
    ) -> InteractionCheckResult:
        summary = get_interaction_summary(interactions)
        result = InteractionCheckResult(
            prescription_id=prescription_id,
            patient_id=patient_id,
            medication_ids=tuple(m.id for m in medications),
            interactions=tuple(interactions),
            status=determine_check_status(interactions),
            warnings=tuple(summary.warnings),
            critical_alerts=tuple(summary.critical_alerts),
            checked_by=checked_by,
        )
        await self.history.add(result)
        logger.info(
            "Interaction check %s: %d medications, %d findings, status %s",
            result.id,
            len(medications),
            summary.total,
            result.status.value,
        )
        return result

    # --- Catalog maintenance ---

    async def create_interaction(self, data: InteractionCreate) -> KnownInteraction:
        """Curate a new catalog record.

        Raises:
            NotFoundError: If either medication does not exist.
            DuplicateInteractionError: If the pair already has a record.
        """
        ids = list(dict.fromkeys([data.drug_a_id, data.drug_b_id]))
        found = {m.id for m in await self.medications.get_medications(ids)}
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFoundError("Medications", missing)
        return await self.catalog.create(data)

    async def get_interaction(self, interaction_id: str) -> KnownInteraction:
        return await self.catalog.get(interaction_id)

    async def update_interaction(
        self, interaction_id: str, changes: InteractionUpdate
    ) -> KnownInteraction:
        return await self.catalog.update(interaction_id, changes)

    async def delete_interaction(self, interaction_id: str) -> KnownInteraction:
        return await self.catalog.delete(interaction_id)

    async def list_interactions(
        self,
        drug_a_id: str | None = None,
        drug_b_id: str | None = None,
        severity: Severity | None = None,
        interaction_type: InteractionType | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[KnownInteraction]:
        return await self.catalog.list_interactions(
            drug_a_id=drug_a_id,
            drug_b_id=drug_b_id,
            severity=severity,
            interaction_type=interaction_type,
            page=page,
            limit=limit,
        )

    # --- Reporting ---

    async def get_patient_interaction_checks(
        self,
        patient_id: str,
        status: CheckStatus | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[InteractionCheckResult]:
        """A patient's recorded checks, newest first."""
        check_paging(page, limit)
        date_from, date_to = _as_utc(date_from), _as_utc(date_to)
        checks = [
            c
            for c in await self.history.for_patient(patient_id)
            if (status is None or c.status is status)
            and (date_from is None or c.checked_at >= date_from)
            and (date_to is None or c.checked_at <= date_to)
        ]
        checks.sort(key=lambda c: c.checked_at, reverse=True)
        return paginate(checks, page, limit)

    async def get_interaction_statistics(self) -> InteractionStatistics:
        """Catalog totals plus check outcomes over the rolling window."""
        # One timestamp for the whole report.
        now = utcnow()
        cutoff = now - timedelta(days=self.stats_window_days)

        recent = [c for c in await self.history.since(cutoff) if c.checked_at <= now]
        return InteractionStatistics(
            total_interactions=await self.catalog.count(),
            interactions_by_severity=await self.catalog.count_by_severity(),
            interactions_by_type=await self.catalog.count_by_type(),
            recent_checks={
                "total": len(recent),
                "passed": sum(c.status is CheckStatus.PASSED for c in recent),
                "warnings": sum(c.status is CheckStatus.WARNINGS for c in recent),
                "critical": sum(c.status is CheckStatus.CRITICAL for c in recent),
            },
            window_days=self.stats_window_days,
            generated_at=now,
        )


def _as_utc(value: datetime | None) -> datetime | None:
    # Naive datetimes are taken to be UTC, like every stored timestamp.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

"""Read interfaces this engine consumes from the host system.

The medication catalog and the prescription/patient store belong to the
host. The engine only depends on the protocols below. The in-memory
implementations back the bundled API server and the tests; a host wires
in its own database-backed versions.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Collection, Iterable, Sequence
from pathlib import Path
from typing import Protocol

from rxguard.models import Medication, Patient, Prescription, PrescriptionStatus

logger = logging.getLogger(__name__)


class MedicationCatalog(Protocol):
    async def get_medications(self, medication_ids: Sequence[str]) -> list[Medication]:
        """Return the medications that exist, active or not, in request order."""
        ...

    async def search_medications(self, fragment: str) -> list[Medication]:
        """Case-insensitive substring search over name and generic name."""
        ...


class PrescriptionStore(Protocol):
    async def get_prescription(self, prescription_id: str) -> Prescription | None: ...

    async def get_patient_prescriptions(
        self,
        patient_id: str,
        statuses: Collection[PrescriptionStatus],
        exclude_id: str | None = None,
        limit: int | None = None,
    ) -> list[Prescription]:
        """Return the patient's prescriptions, newest prescribed date first."""
        ...

    async def get_patient(self, patient_id: str) -> Patient | None: ...


class InMemoryMedicationCatalog:
    def __init__(self, medications: Iterable[Medication] = ()) -> None:
        self._medications: dict[str, Medication] = {}
        for medication in medications:
            self.add(medication)

    def add(self, medication: Medication) -> None:
        self._medications[medication.id] = medication

    async def get_medications(self, medication_ids: Sequence[str]) -> list[Medication]:
        return [self._medications[i] for i in medication_ids if i in self._medications]

    async def search_medications(self, fragment: str) -> list[Medication]:
        needle = fragment.strip().lower()
        if not needle:
            return []
        return [
            m
            for m in self._medications.values()
            if needle in m.name.lower()
            or (m.generic_name is not None and needle in m.generic_name.lower())
        ]


class InMemoryPrescriptionStore:
    def __init__(
        self,
        prescriptions: Iterable[Prescription] = (),
        patients: Iterable[Patient] = (),
    ) -> None:
        self._prescriptions = {p.id: p for p in prescriptions}
        self._patients = {p.id: p for p in patients}

    def add_prescription(self, prescription: Prescription) -> None:
        self._prescriptions[prescription.id] = prescription

    def add_patient(self, patient: Patient) -> None:
        self._patients[patient.id] = patient

    async def get_prescription(self, prescription_id: str) -> Prescription | None:
        return self._prescriptions.get(prescription_id)

    async def get_patient_prescriptions(
        self,
        patient_id: str,
        statuses: Collection[PrescriptionStatus],
        exclude_id: str | None = None,
        limit: int | None = None,
    ) -> list[Prescription]:
        matches = [
            p
            for p in self._prescriptions.values()
            if p.patient_id == patient_id and p.status in statuses and p.id != exclude_id
        ]
        matches.sort(key=lambda p: p.prescribed_date, reverse=True)
        return matches if limit is None else matches[:limit]

    async def get_patient(self, patient_id: str) -> Patient | None:
        return self._patients.get(patient_id)


def load_seed_data(
    path: str | Path | None,
) -> tuple[InMemoryMedicationCatalog, InMemoryPrescriptionStore]:
    """Build in-memory collaborators from a JSON seed file.

    The file holds three optional lists: ``medications``, ``patients`` and
    ``prescriptions``, each entry shaped like the matching model. An empty
    path yields empty stores.
    """
    if not path:
        return InMemoryMedicationCatalog(), InMemoryPrescriptionStore()

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    medications = [Medication.model_validate(m) for m in data.get("medications", [])]
    patients = [Patient.model_validate(p) for p in data.get("patients", [])]
    prescriptions = [
        Prescription.model_validate(p) for p in data.get("prescriptions", [])
    ]
    logger.info(
        "Seeded %d medications, %d patients, %d prescriptions from %s",
        len(medications),
        len(patients),
        len(prescriptions),
        path,
    )
    return (
        InMemoryMedicationCatalog(medications),
        InMemoryPrescriptionStore(prescriptions, patients),
    )

"""Shared fixtures: a small formulary and empty in-memory stores.

Fixtures are synchronous; tests that need catalog records create them
inside the (async) test body.
"""

from __future__ import annotations

import pytest

from rxguard.collaborators import InMemoryMedicationCatalog, InMemoryPrescriptionStore
from rxguard.lookup import InteractionCatalog
from rxguard.models import Medication


@pytest.fixture
def formulary() -> dict[str, Medication]:
    """Medications keyed by a short handle."""
    meds = [
        Medication(id="med-warfarin", name="Warfarin", generic_name="warfarin sodium"),
        Medication(id="med-aspirin", name="Aspirin", generic_name="acetylsalicylic acid"),
        Medication(id="med-ibuprofen", name="Ibuprofen"),
        Medication(id="med-lisinopril", name="Lisinopril"),
        Medication(id="med-enalapril", name="Enalapril"),
        Medication(id="med-rifampin", name="Rifampin"),
        Medication(id="med-ketoconazole", name="Ketoconazole"),
        Medication(id="med-simvastatin", name="Simvastatin"),
        Medication(id="med-amiodarone", name="Amiodarone"),
        Medication(id="med-digoxin", name="Digoxin"),
        Medication(id="med-amoxicillin", name="Amoxicillin"),
        Medication(id="med-acetaminophen", name="Acetaminophen"),
        Medication(
            id="med-xarelto",
            name="Xarelto",
            ingredient_class_tags=("Anticoagulant",),
        ),
        Medication(id="med-retired", name="Retiredol", is_active=False),
    ]
    return {m.id.removeprefix("med-"): m for m in meds}


@pytest.fixture
def medication_catalog(formulary: dict[str, Medication]) -> InMemoryMedicationCatalog:
    return InMemoryMedicationCatalog(formulary.values())


@pytest.fixture
def prescription_store() -> InMemoryPrescriptionStore:
    return InMemoryPrescriptionStore()


@pytest.fixture
def interaction_catalog() -> InteractionCatalog:
    return InteractionCatalog()

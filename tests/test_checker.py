"""Tests for the pairwise interaction checker, allergy checks and summaries."""

from __future__ import annotations

import pytest

from rxguard.checker import PATIENT_ALLERGY, InteractionChecker, get_interaction_summary
from rxguard.lookup import InteractionCatalog
from rxguard.models import (
    InteractionCreate,
    InteractionType,
    Medication,
    Patient,
    Severity,
)
from rxguard.rules import CYP450_RULE, RULE_BASED


def _checker(catalog: InteractionCatalog, concurrency: int = 4) -> InteractionChecker:
    return InteractionChecker(catalog, concurrency=concurrency)


class TestCheckInteractions:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("handles", [[], ["warfarin"]])
    async def test_fewer_than_two_medications(
        self,
        handles: list[str],
        formulary: dict[str, Medication],
        interaction_catalog: InteractionCatalog,
    ) -> None:
        meds = [formulary[h] for h in handles]
        assert await _checker(interaction_catalog).check_interactions(meds) == []

    @pytest.mark.asyncio
    async def test_anticoagulant_with_nsaid(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        findings = await _checker(interaction_catalog).check_interactions(
            [formulary["warfarin"], formulary["aspirin"]]
        )

        assert len(findings) == 1
        assert findings[0].severity is Severity.MODERATE
        assert findings[0].interaction_type is InteractionType.MAJOR
        assert findings[0].source == RULE_BASED
        assert findings[0].drug_a.id == "med-warfarin"
        assert findings[0].drug_b is not None
        assert findings[0].drug_b.id == "med-aspirin"

    @pytest.mark.asyncio
    async def test_catalog_record_overrides_heuristic(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        record = await interaction_catalog.create(
            InteractionCreate(
                drug_a_id="med-aspirin",
                drug_b_id="med-warfarin",
                interaction_type=InteractionType.MAJOR,
                severity=Severity.SEVERE,
                description="Curated bleeding risk",
            )
        )

        findings = await _checker(interaction_catalog).check_interactions(
            [formulary["warfarin"], formulary["aspirin"]]
        )

        assert len(findings) == 1
        assert findings[0].severity is Severity.SEVERE
        assert findings[0].source == "MANUAL"
        assert findings[0].interaction_id == record.id
        assert findings[0].last_updated == record.last_updated

    @pytest.mark.asyncio
    async def test_class_tag_marks_anticoagulant(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        findings = await _checker(interaction_catalog).check_interactions(
            [formulary["ibuprofen"], formulary["xarelto"]]
        )

        assert [f.description for f in findings] == [
            "NSAID and anticoagulant combination may increase bleeding risk"
        ]

    @pytest.mark.asyncio
    async def test_cyp450_inducer(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        findings = await _checker(interaction_catalog).check_interactions(
            [formulary["rifampin"], formulary["warfarin"]]
        )

        assert len(findings) == 1
        assert findings[0].source == CYP450_RULE

    @pytest.mark.asyncio
    async def test_results_sorted_by_severity(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        await interaction_catalog.create(
            InteractionCreate(
                drug_a_id="med-amiodarone",
                drug_b_id="med-digoxin",
                interaction_type=InteractionType.MAJOR,
                severity=Severity.SEVERE,
                description="Amiodarone raises digoxin levels",
            )
        )
        meds = [
            formulary[h]
            for h in ("lisinopril", "enalapril", "warfarin", "aspirin", "amiodarone", "digoxin")
        ]

        findings = await _checker(interaction_catalog).check_interactions(meds)

        assert [f.severity for f in findings] == [
            Severity.SEVERE,
            Severity.MODERATE,
            Severity.MILD,
        ]

    @pytest.mark.asyncio
    async def test_same_result_at_any_concurrency(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        meds = [
            formulary[h]
            for h in ("warfarin", "aspirin", "ibuprofen", "rifampin", "ketoconazole")
        ]

        serial = await _checker(interaction_catalog, concurrency=1).check_interactions(meds)
        parallel = await _checker(interaction_catalog, concurrency=8).check_interactions(meds)

        assert serial == parallel
        assert len(serial) > 1

    @pytest.mark.asyncio
    async def test_unrelated_medications_have_no_findings(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        findings = await _checker(interaction_catalog).check_interactions(
            [formulary["acetaminophen"], formulary["lisinopril"]]
        )
        assert findings == []


class TestAllergies:
    def test_cross_reactive_class(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        findings = _checker(interaction_catalog).check_allergies(
            [formulary["amoxicillin"], formulary["acetaminophen"]], ["Penicillin"]
        )

        assert len(findings) == 1
        finding = findings[0]
        assert finding.interaction_type is InteractionType.ALLERGY
        assert finding.severity is Severity.CONTRAINDICATED
        assert finding.source == PATIENT_ALLERGY
        assert finding.drug_a.id == "med-amoxicillin"
        assert finding.drug_b is None
        assert finding.description == (
            "Patient allergic to Penicillin - potential cross-reactivity with Amoxicillin"
        )

    def test_direct_match_on_generic_name(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        checker = _checker(interaction_catalog)
        assert checker.is_allergic_reaction(formulary["aspirin"], "Acetylsalicylic Acid")
        assert checker.is_allergic_reaction(formulary["warfarin"], "warfarin")
        assert not checker.is_allergic_reaction(formulary["digoxin"], "penicillin")

    def test_sulfonamide_allergy_ignores_sulfate_salts(
        self, interaction_catalog: InteractionCatalog
    ) -> None:
        salts = [
            Medication(id="med-ferrous", name="Ferrous Sulfate"),
            Medication(id="med-magnesium", name="Magnesium Sulfate"),
        ]
        checker = _checker(interaction_catalog)

        assert checker.check_allergies(salts, ["Sulfamethoxazole"]) == []
        assert checker.check_allergies(salts, ["Sulfa"]) == []

    @pytest.mark.parametrize("allergy", ["Sulfa", "sulfa drugs", "Sulfonamides"])
    def test_sulfonamide_class_still_matches(
        self, allergy: str, interaction_catalog: InteractionCatalog
    ) -> None:
        bactrim = Medication(
            id="med-bactrim", name="Bactrim", generic_name="sulfamethoxazole/trimethoprim"
        )

        findings = _checker(interaction_catalog).check_allergies([bactrim], [allergy])

        assert [f.severity for f in findings] == [Severity.CONTRAINDICATED]

    def test_blank_allergies_ignored(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        findings = _checker(interaction_catalog).check_allergies(
            [formulary["warfarin"]], ["", "   "]
        )
        assert findings == []

    @pytest.mark.asyncio
    async def test_patient_check_combines_and_sorts(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        patient = Patient(id="pat-1", allergies=("penicillin",))
        meds = [formulary["warfarin"], formulary["aspirin"], formulary["amoxicillin"]]

        findings = await _checker(interaction_catalog).check_interactions_for_patient(
            meds, patient
        )

        assert [f.interaction_type for f in findings] == [
            InteractionType.ALLERGY,
            InteractionType.MAJOR,
        ]


class TestSummary:
    @pytest.mark.asyncio
    async def test_counts_and_alerts(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        checker = _checker(interaction_catalog)
        findings = [
            *await checker.check_interactions(
                [formulary[h] for h in ("warfarin", "aspirin", "lisinopril", "enalapril")]
            ),
            *checker.check_allergies([formulary["amoxicillin"]], ["penicillin"]),
        ]

        summary = get_interaction_summary(findings)

        assert summary.total == 3
        assert summary.by_severity[Severity.CONTRAINDICATED] == 1
        assert summary.by_severity[Severity.MODERATE] == 1
        assert summary.by_severity[Severity.MILD] == 1
        assert summary.by_severity[Severity.SEVERE] == 0
        assert summary.by_type[InteractionType.ALLERGY] == 1
        assert summary.by_type[InteractionType.MINOR] == 0
        assert len(summary.critical_alerts) == 1
        assert summary.warnings == [
            "Anticoagulant and NSAID combination may increase bleeding risk"
        ]

    def test_empty_summary(self) -> None:
        summary = get_interaction_summary([])
        assert summary.total == 0
        assert set(summary.by_severity) == set(Severity)
        assert all(count == 0 for count in summary.by_type.values())

    @pytest.mark.asyncio
    async def test_counts_independent_of_order(
        self, formulary: dict[str, Medication], interaction_catalog: InteractionCatalog
    ) -> None:
        findings = await _checker(interaction_catalog).check_interactions(
            [formulary[h] for h in ("warfarin", "aspirin", "rifampin", "lisinopril", "enalapril")]
        )

        forward = get_interaction_summary(findings)
        backward = get_interaction_summary(list(reversed(findings)))

        assert forward.total == backward.total
        assert forward.by_severity == backward.by_severity
        assert forward.by_type == backward.by_type
        assert get_interaction_summary(findings) == forward

"""Pairwise interaction checking.

For every unordered pair of medications the checker first asks the
interaction catalog for a curated record. If there is none, it falls back
to the heuristic rules. Pairs are independent, so they are evaluated
concurrently (bounded by a semaphore). Results are gathered in pair order
and then stably sorted by severity, so output is deterministic for a
given input regardless of scheduling.

Findings are never exhaustive. An empty list means nothing was found, not
that the combination is safe.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable, Sequence
from itertools import combinations

from rxguard.config import CHECK_CONCURRENCY
from rxguard.lookup import InteractionCatalog
from rxguard.models import (
    CandidateInteraction,
    DrugRef,
    InteractionSummary,
    InteractionType,
    KnownInteraction,
    Medication,
    Patient,
    Severity,
)
from rxguard.rules import DEFAULT_KEYWORDS, KeywordSets, first_match
from rxguard.severity import is_critical, is_warning, sort_by_severity

logger = logging.getLogger(__name__)

PATIENT_ALLERGY = "PATIENT_ALLERGY"


class InteractionChecker:
    """Evaluates a medication set for drug-drug and drug-allergy hazards."""

    def __init__(
        self,
        catalog: InteractionCatalog,
        keywords: KeywordSets = DEFAULT_KEYWORDS,
        concurrency: int = CHECK_CONCURRENCY,
    ) -> None:
        self.catalog = catalog
        self.keywords = keywords
        self._concurrency = max(1, concurrency)

    async def check_interactions(
        self, medications: Sequence[Medication]
    ) -> list[CandidateInteraction]:
        """Check every unordered pair; return findings highest risk first."""
        pairs = list(combinations(medications, 2))
        if not pairs:
            return []

        semaphore = asyncio.Semaphore(self._concurrency)

        async def evaluate(
            drug_a: Medication, drug_b: Medication
        ) -> CandidateInteraction | None:
            async with semaphore:
                return await self._check_pair(drug_a, drug_b)

        # gather() keeps results in pair order, which fixes tie order below.
        results = await asyncio.gather(*(evaluate(a, b) for a, b in pairs))
        findings = [r for r in results if r is not None]
        logger.debug(
            "Checked %d pairs across %d medications: %d findings",
            len(pairs),
            len(medications),
            len(findings),
        )
        return sort_by_severity(findings)

    async def _check_pair(
        self, drug_a: Medication, drug_b: Medication
    ) -> CandidateInteraction | None:
        known = await self.catalog.find(drug_a.id, drug_b.id)
        if known is not None:
            return _from_catalog(known, drug_a, drug_b)
        return first_match(drug_a, drug_b, self.keywords)

    async def check_interactions_for_patient(
        self, medications: Sequence[Medication], patient: Patient
    ) -> list[CandidateInteraction]:
        """Drug-drug findings plus allergy findings for this patient."""
        interactions = await self.check_interactions(medications)
        allergies = self.check_allergies(medications, patient.allergies)
        return sort_by_severity([*interactions, *allergies])

    def check_allergies(
        self, medications: Iterable[Medication], allergies: Iterable[str]
    ) -> list[CandidateInteraction]:
        recorded = [a.strip() for a in allergies if a and a.strip()]
        findings = []
        for medication in medications:
            for allergy in recorded:
                if self.is_allergic_reaction(medication, allergy):
                    findings.append(
                        CandidateInteraction(
                            drug_a=DrugRef.of(medication),
                            drug_b=None,
                            interaction_type=InteractionType.ALLERGY,
                            severity=Severity.CONTRAINDICATED,
                            description=(
                                f"Patient allergic to {allergy} - potential "
                                f"cross-reactivity with {medication.name}"
                            ),
                            clinical_effects="Allergic reaction",
                            management_advice="Do not prescribe - use alternative medication",
                            source=PATIENT_ALLERGY,
                        )
                    )
        return findings

    def is_allergic_reaction(self, medication: Medication, allergy: str) -> bool:
        """Direct name match in either direction, or a shared cross-reactive class.

        Names are compared as whole words, so a sulfonamide allergy does not
        flag a sulfate salt.
        """
        allergy_lower = allergy.strip().lower()
        if not allergy_lower:
            return False
        names = [medication.name.lower()]
        if medication.generic_name:
            names.append(medication.generic_name.lower())

        if any(_mentions(n, allergy_lower) or _mentions(allergy_lower, n) for n in names):
            return True

        for members in self.keywords.cross_reactivity.values():
            if any(_mentions(allergy_lower, m) for m in members) and any(
                _mentions(n, m) for m in members for n in names
            ):
                return True
        return False


def _mentions(text: str, term: str) -> bool:
    """True if ``term`` occurs in ``text`` as a whole word, plural allowed."""
    return re.search(rf"(?<!\w){re.escape(term)}s?(?!\w)", text) is not None


def _from_catalog(
    known: KnownInteraction, drug_a: Medication, drug_b: Medication
) -> CandidateInteraction:
    return CandidateInteraction(
        drug_a=DrugRef.of(drug_a),
        drug_b=DrugRef.of(drug_b),
        interaction_type=known.interaction_type,
        severity=known.severity,
        description=known.description,
        clinical_effects=known.clinical_effects,
        management_advice=known.management_advice,
        source=known.source,
        interaction_id=known.id,
        last_updated=known.last_updated,
    )


def get_interaction_summary(
    interactions: Iterable[CandidateInteraction],
) -> InteractionSummary:
    """Count findings by severity and type and collect alert descriptions.

    Pure: the same input always produces the same summary, and the counts
    do not depend on input order.
    """
    summary = InteractionSummary()
    for interaction in interactions:
        summary.total += 1
        summary.by_severity[interaction.severity] += 1
        summary.by_type[interaction.interaction_type] += 1
        if is_critical(interaction.severity):
            summary.critical_alerts.append(interaction.description)
        elif is_warning(interaction.severity):
            summary.warnings.append(interaction.description)
    return summary

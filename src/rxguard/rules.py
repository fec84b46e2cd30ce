"""Heuristic interaction rules.

When no catalogued record exists for a pair, these rules infer a likely
interaction from drug-class keywords. They are best-effort: a pair that
no rule recognizes produces no finding, which says nothing about safety.

Each rule is a pure function ``(drug_a, drug_b, keywords)`` returning a
CandidateInteraction or None. RULES lists them in priority order and
``first_match`` returns only the first hit, so a pair yields at most one
heuristic finding.

The keyword lists are data. Defaults live in DEFAULT_KEYWORDS; a JSON
file (see ``load_keyword_sets``) can replace any of them.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

from rxguard.models import (
    CandidateInteraction,
    DrugRef,
    InteractionType,
    Medication,
    Severity,
)

logger = logging.getLogger(__name__)

RULE_BASED = "RULE_BASED"
CYP450_RULE = "CYP450_RULE"


class KeywordSets(BaseModel):
    """Curated keyword lists consumed by the rules and the allergy check.

    Rule matching is case-insensitive substring membership, so entries are
    stored stripped and lowercase. Blank entries are discarded.
    """

    model_config = ConfigDict(frozen=True)

    anticoagulants: tuple[str, ...]
    nsaids: tuple[str, ...]
    # Class tags that mark a medication as a member regardless of its name.
    anticoagulant_tag: str = "anticoagulant"
    nsaid_tag: str = "nsaid"
    duplicate_therapy_pairs: tuple[tuple[str, str], ...]
    cyp_inducers: tuple[str, ...]
    cyp_inhibitors: tuple[str, ...]
    cyp_substrates: tuple[str, ...]
    # Drug names that trigger the same allergic response, keyed by class.
    # Matched as whole words, so "sulfa" does not match "sulfate".
    cross_reactivity: dict[str, tuple[str, ...]]

    @field_validator(
        "anticoagulants", "nsaids", "cyp_inducers", "cyp_inhibitors", "cyp_substrates"
    )
    @classmethod
    def _normalize(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return _clean(value)

    @field_validator("anticoagulant_tag", "nsaid_tag")
    @classmethod
    def _normalize_tag(cls, value: str) -> str:
        tag = value.strip().lower()
        if not tag:
            raise ValueError("class tag must not be blank")
        return tag

    @field_validator("duplicate_therapy_pairs")
    @classmethod
    def _normalize_pairs(
        cls, value: tuple[tuple[str, str], ...]
    ) -> tuple[tuple[str, str], ...]:
        pairs = ((a.strip().lower(), b.strip().lower()) for a, b in value)
        return tuple((a, b) for a, b in pairs if a and b)

    @field_validator("cross_reactivity")
    @classmethod
    def _normalize_classes(
        cls, value: dict[str, tuple[str, ...]]
    ) -> dict[str, tuple[str, ...]]:
        classes = {name: _clean(members) for name, members in value.items()}
        return {name: members for name, members in classes.items() if members}


def _clean(entries: Iterable[str]) -> tuple[str, ...]:
    # A blank keyword is a substring of every name, so it is dropped.
    return tuple(k for k in (e.strip().lower() for e in entries) if k)


DEFAULT_KEYWORDS = KeywordSets(
    anticoagulants=(
        "warfarin",
        "heparin",
        "enoxaparin",
        "rivaroxaban",
        "apixaban",
        "dabigatran",
        "edoxaban",
        "fondaparinux",
    ),
    nsaids=(
        "aspirin",
        "ibuprofen",
        "naproxen",
        "diclofenac",
        "celecoxib",
        "meloxicam",
        "indomethacin",
        "ketorolac",
        "piroxicam",
    ),
    duplicate_therapy_pairs=(
        ("lisinopril", "enalapril"),  # ACE inhibitors
        ("atorvastatin", "simvastatin"),  # statins
        ("metformin", "glipizide"),  # antidiabetics
        ("omeprazole", "pantoprazole"),  # PPIs
    ),
    cyp_inducers=("rifampin", "carbamazepine", "phenobarbital", "phenytoin"),
    cyp_inhibitors=("ketoconazole", "itraconazole", "clarithromycin", "fluconazole"),
    cyp_substrates=("warfarin", "theophylline", "cyclosporine", "tacrolimus"),
    cross_reactivity={
        "penicillin": (
            "penicillin",
            "amoxicillin",
            "ampicillin",
            "nafcillin",
            "oxacillin",
            "dicloxacillin",
            "piperacillin",
        ),
        "sulfonamide": (
            "sulfa",
            "sulfonamide",
            "sulfamethoxazole",
            "sulfadiazine",
            "sulfasalazine",
            "sulfisoxazole",
            "sulfacetamide",
        ),
    },
)


def load_keyword_sets(path: str | Path | None) -> KeywordSets:
    """Return the default keyword sets overlaid with a JSON file's keys.

    Keys present in the file replace the default value for that key; keys
    absent keep their default. An empty path returns the defaults.
    """
    if not path:
        return DEFAULT_KEYWORDS
    overrides = json.loads(Path(path).read_text(encoding="utf-8"))
    merged = DEFAULT_KEYWORDS.model_dump()
    merged.update(overrides)
    logger.info("Loaded keyword overrides for %s from %s", sorted(overrides), path)
    return KeywordSets.model_validate(merged)


# ---------------------------------------------------------------------------
# Matching helpers
# ---------------------------------------------------------------------------


def _names(drug: Medication) -> list[str]:
    names = [drug.name.lower()]
    if drug.generic_name:
        names.append(drug.generic_name.lower())
    return names


def matches_any(drug: Medication, keywords: Iterable[str]) -> bool:
    """True if any keyword is a substring of the drug's name or generic name."""
    names = _names(drug)
    return any(k in n for k in keywords for n in names)


def _has_tag(drug: Medication, tag: str) -> bool:
    return tag.lower() in (t.lower() for t in drug.ingredient_class_tags)


def is_anticoagulant(drug: Medication, keywords: KeywordSets) -> bool:
    return matches_any(drug, keywords.anticoagulants) or _has_tag(
        drug, keywords.anticoagulant_tag
    )


def is_nsaid(drug: Medication, keywords: KeywordSets) -> bool:
    return matches_any(drug, keywords.nsaids) or _has_tag(drug, keywords.nsaid_tag)


def _finding(
    drug_a: Medication,
    drug_b: Medication,
    interaction_type: InteractionType,
    severity: Severity,
    description: str,
    clinical_effects: str,
    management_advice: str,
    source: str,
) -> CandidateInteraction:
    return CandidateInteraction(
        drug_a=DrugRef.of(drug_a),
        drug_b=DrugRef.of(drug_b),
        interaction_type=interaction_type,
        severity=severity,
        description=description,
        clinical_effects=clinical_effects,
        management_advice=management_advice,
        source=source,
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def anticoagulant_nsaid_rule(
    drug_a: Medication, drug_b: Medication, keywords: KeywordSets
) -> CandidateInteraction | None:
    if is_anticoagulant(drug_a, keywords) and is_nsaid(drug_b, keywords):
        description = "Anticoagulant and NSAID combination may increase bleeding risk"
    elif is_nsaid(drug_a, keywords) and is_anticoagulant(drug_b, keywords):
        description = "NSAID and anticoagulant combination may increase bleeding risk"
    else:
        return None
    return _finding(
        drug_a,
        drug_b,
        InteractionType.MAJOR,
        Severity.MODERATE,
        description,
        "Increased risk of gastrointestinal bleeding",
        "Monitor for signs of bleeding, consider alternative pain management",
        RULE_BASED,
    )


def duplicate_therapy_rule(
    drug_a: Medication, drug_b: Medication, keywords: KeywordSets
) -> CandidateInteraction | None:
    for first, second in keywords.duplicate_therapy_pairs:
        if (matches_any(drug_a, [first]) and matches_any(drug_b, [second])) or (
            matches_any(drug_a, [second]) and matches_any(drug_b, [first])
        ):
            return _finding(
                drug_a,
                drug_b,
                InteractionType.MODERATE,
                Severity.MILD,
                "Potential duplicate therapy - both medications may have similar effects",
                "Possible increased side effects without additional benefit",
                "Review indication for both medications, consider discontinuation of one",
                RULE_BASED,
            )
    return None


def cyp450_rule(
    drug_a: Medication, drug_b: Medication, keywords: KeywordSets
) -> CandidateInteraction | None:
    a_substrate = matches_any(drug_a, keywords.cyp_substrates)
    b_substrate = matches_any(drug_b, keywords.cyp_substrates)

    if (matches_any(drug_a, keywords.cyp_inducers) and b_substrate) or (
        matches_any(drug_b, keywords.cyp_inducers) and a_substrate
    ):
        return _finding(
            drug_a,
            drug_b,
            InteractionType.MODERATE,
            Severity.MODERATE,
            "CYP450 enzyme inducer may decrease levels of substrate drug",
            "Reduced effectiveness of substrate medication",
            "Monitor therapeutic levels, consider dose adjustment",
            CYP450_RULE,
        )

    if (matches_any(drug_a, keywords.cyp_inhibitors) and b_substrate) or (
        matches_any(drug_b, keywords.cyp_inhibitors) and a_substrate
    ):
        return _finding(
            drug_a,
            drug_b,
            InteractionType.MODERATE,
            Severity.MODERATE,
            "CYP450 enzyme inhibitor may increase levels of substrate drug",
            "Increased risk of toxicity from substrate medication",
            "Monitor for toxicity, consider dose reduction",
            CYP450_RULE,
        )

    return None


Rule = Callable[[Medication, Medication, KeywordSets], CandidateInteraction | None]

# Priority order matters: only the first hit is reported for a pair.
RULES: tuple[Rule, ...] = (
    anticoagulant_nsaid_rule,
    duplicate_therapy_rule,
    cyp450_rule,
)


def first_match(
    drug_a: Medication,
    drug_b: Medication,
    keywords: KeywordSets = DEFAULT_KEYWORDS,
    rules: Iterable[Rule] = RULES,
) -> CandidateInteraction | None:
    """Run the rules in order and return the first finding, if any."""
    for rule in rules:
        finding = rule(drug_a, drug_b, keywords)
        if finding is not None:
            return finding
    return None

"""Tests for the heuristic rule library and keyword configuration."""

from __future__ import annotations

import json
from pathlib import Path

import pydantic
import pytest

from rxguard.models import InteractionType, Medication, Severity
from rxguard.rules import (
    CYP450_RULE,
    DEFAULT_KEYWORDS,
    RULE_BASED,
    anticoagulant_nsaid_rule,
    cyp450_rule,
    duplicate_therapy_rule,
    first_match,
    load_keyword_sets,
)


def _med(name: str, generic: str | None = None, tags: tuple[str, ...] = ()) -> Medication:
    return Medication(
        id=f"id-{name.lower()}", name=name, generic_name=generic, ingredient_class_tags=tags
    )


class TestAnticoagulantNsaidRule:
    def test_matches_in_both_directions(self) -> None:
        warfarin, aspirin = _med("Warfarin"), _med("Aspirin")

        forward = anticoagulant_nsaid_rule(warfarin, aspirin, DEFAULT_KEYWORDS)
        backward = anticoagulant_nsaid_rule(aspirin, warfarin, DEFAULT_KEYWORDS)

        assert forward is not None and backward is not None
        assert forward.severity is Severity.MODERATE
        assert forward.interaction_type is InteractionType.MAJOR
        assert forward.source == RULE_BASED
        assert forward.description.startswith("Anticoagulant and NSAID")
        assert backward.description.startswith("NSAID and anticoagulant")

    def test_matches_generic_name_case_insensitively(self) -> None:
        brand = _med("Coumadin", generic="WARFARIN SODIUM")
        assert anticoagulant_nsaid_rule(brand, _med("Advil", "ibuprofen"), DEFAULT_KEYWORDS)

    def test_matches_class_tag(self) -> None:
        tagged = _med("Xarelto", tags=("Anticoagulant",))
        assert anticoagulant_nsaid_rule(tagged, _med("Naproxen"), DEFAULT_KEYWORDS)

    def test_two_nsaids_do_not_match(self) -> None:
        assert (
            anticoagulant_nsaid_rule(_med("Aspirin"), _med("Ibuprofen"), DEFAULT_KEYWORDS) is None
        )


class TestDuplicateTherapyRule:
    def test_known_pair(self) -> None:
        finding = duplicate_therapy_rule(
            _med("Lisinopril"), _med("Enalapril"), DEFAULT_KEYWORDS
        )
        assert finding is not None
        assert finding.severity is Severity.MILD
        assert finding.interaction_type is InteractionType.MODERATE

    def test_pair_order_does_not_matter(self) -> None:
        assert duplicate_therapy_rule(
            _med("Simvastatin 20mg"), _med("Atorvastatin"), DEFAULT_KEYWORDS
        )

    def test_same_drug_twice_is_not_a_pair(self) -> None:
        assert (
            duplicate_therapy_rule(_med("Lisinopril"), _med("Lisinopril"), DEFAULT_KEYWORDS)
            is None
        )


class TestCyp450Rule:
    def test_inducer_and_substrate(self) -> None:
        finding = cyp450_rule(_med("Rifampin"), _med("Theophylline"), DEFAULT_KEYWORDS)
        assert finding is not None
        assert finding.source == CYP450_RULE
        assert "inducer" in finding.description

    def test_substrate_and_inhibitor(self) -> None:
        finding = cyp450_rule(_med("Tacrolimus"), _med("Fluconazole"), DEFAULT_KEYWORDS)
        assert finding is not None
        assert "inhibitor" in finding.description

    def test_two_substrates_do_not_match(self) -> None:
        assert cyp450_rule(_med("Warfarin"), _med("Cyclosporine"), DEFAULT_KEYWORDS) is None


class TestFirstMatch:
    def test_unrelated_drugs(self) -> None:
        assert first_match(_med("Acetaminophen"), _med("Loratadine")) is None

    def test_priority_order_reports_one_finding(self) -> None:
        # Aspirin configured as a CYP inducer too: both rules apply to the
        # pair, only the anticoagulant rule is reported.
        keywords = DEFAULT_KEYWORDS.model_copy(
            update={"cyp_inducers": ("aspirin",)}
        )
        warfarin, aspirin = _med("Warfarin"), _med("Aspirin")
        assert cyp450_rule(warfarin, aspirin, keywords) is not None

        finding = first_match(warfarin, aspirin, keywords)

        assert finding is not None
        assert finding.source == RULE_BASED
        assert finding.interaction_type is InteractionType.MAJOR


class TestKeywordConfiguration:
    def test_empty_path_returns_defaults(self) -> None:
        assert load_keyword_sets("") is DEFAULT_KEYWORDS
        assert load_keyword_sets(None) is DEFAULT_KEYWORDS

    def test_file_overrides_only_given_keys(self, tmp_path: Path) -> None:
        path = tmp_path / "keywords.json"
        path.write_text(json.dumps({"nsaids": ["Ketoprofen"]}))

        keywords = load_keyword_sets(path)

        assert keywords.nsaids == ("ketoprofen",)
        assert keywords.anticoagulants == DEFAULT_KEYWORDS.anticoagulants
        assert anticoagulant_nsaid_rule(_med("Warfarin"), _med("Ketoprofen"), keywords)
        assert anticoagulant_nsaid_rule(_med("Warfarin"), _med("Aspirin"), keywords) is None

    def test_entries_are_lowercased(self, tmp_path: Path) -> None:
        path = tmp_path / "keywords.json"
        path.write_text(
            json.dumps(
                {
                    "duplicate_therapy_pairs": [["Losartan", "Valsartan"]],
                    "cross_reactivity": {"cephalosporin": ["Cefalexin", "CEFAZOLIN"]},
                }
            )
        )

        keywords = load_keyword_sets(path)

        assert keywords.duplicate_therapy_pairs == (("losartan", "valsartan"),)
        assert keywords.cross_reactivity == {"cephalosporin": ("cefalexin", "cefazolin")}

    def test_blank_entries_are_discarded(self, tmp_path: Path) -> None:
        path = tmp_path / "keywords.json"
        path.write_text(
            json.dumps(
                {
                    "nsaids": ["ibuprofen", "", "   "],
                    "cyp_inducers": [""],
                    "duplicate_therapy_pairs": [["", "enalapril"], ["Losartan ", "valsartan"]],
                    "cross_reactivity": {"empty": [" "], "penicillin": ["", "amoxicillin"]},
                }
            )
        )

        keywords = load_keyword_sets(path)

        assert keywords.nsaids == ("ibuprofen",)
        assert keywords.cyp_inducers == ()
        assert keywords.duplicate_therapy_pairs == (("losartan", "valsartan"),)
        assert keywords.cross_reactivity == {"penicillin": ("amoxicillin",)}
        assert first_match(_med("Warfarin"), _med("Acetaminophen"), keywords) is None
        assert first_match(_med("Lisinopril"), _med("Enalapril"), keywords) is None

    def test_blank_class_tag_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "keywords.json"
        path.write_text(json.dumps({"nsaid_tag": "  "}))

        with pytest.raises(pydantic.ValidationError):
            load_keyword_sets(path)

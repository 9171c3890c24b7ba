"""Tests for the prompt grammar library loader."""

import copy
import json

import pytest
from pydantic import ValidationError

from sketchboard.config import loaders
from sketchboard.config.loaders import (
    PromptGrammar,
    VocabularyPolicy,
    clear_config_cache,
    get_config_version,
    get_grammar,
    list_grammar_ids,
    load_prompt_grammars_v1,
)
from sketchboard.core.exceptions import ConfigurationError
from sketchboard.records import SectionKind


def _raw_grammar(grammar_id="brief-sketch"):
    path = loaders._CONFIG_DIR / "prompt_grammars_v1.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    return copy.deepcopy(next(item for item in data["grammars"] if item["id"] == grammar_id))


class TestLibrary:
    def test_loads_three_grammars(self):
        lib = load_prompt_grammars_v1()
        assert lib.version == "v1"
        assert list_grammar_ids() == ["brief-sketch", "high-fidelity-form", "six-section-technical"]

    def test_loader_is_cached(self):
        assert load_prompt_grammars_v1() is load_prompt_grammars_v1()

    def test_clear_cache_bumps_version(self):
        before = get_config_version()
        first = load_prompt_grammars_v1()

        clear_config_cache()

        assert get_config_version() == before + 1
        assert load_prompt_grammars_v1() is not first

    def test_unknown_grammar(self):
        with pytest.raises(ConfigurationError) as exc_info:
            get_grammar("comic-deluxe")
        assert "comic-deluxe" in str(exc_info.value)
        assert "brief-sketch" in exc_info.value.detail

    def test_invalid_library_is_configuration_error(self, monkeypatch, tmp_path):
        (tmp_path / "prompt_grammars_v1.json").write_text('{"version": "v1", "grammars": []}', encoding="utf-8")
        monkeypatch.setattr(loaders, "_CONFIG_DIR", tmp_path)
        clear_config_cache()

        with pytest.raises(ConfigurationError):
            load_prompt_grammars_v1()


class TestGrammarShape:
    def test_brief_sketch(self, brief_sketch):
        assert brief_sketch.layout == "labeled"
        assert brief_sketch.budget_unit == "chars"
        assert brief_sketch.max_budget == 1000
        assert [section.label for section in brief_sketch.sections] == [
            "SHOT",
            "CHARACTERS",
            "ACTION",
            "LOCATION",
            "ATMOSPHERE",
            "STYLE",
        ]

    def test_high_fidelity_form(self, high_fidelity):
        assert high_fidelity.layout == "prose"
        assert high_fidelity.budget_unit == "words"
        assert "texture" in high_fidelity.vocabulary.deny
        assert "silhouette" in high_fidelity.vocabulary.allow

    def test_six_section_technical(self, six_section):
        assert six_section.section_for(SectionKind.CONSTRAINTS).label == "DO NOT INCLUDE"
        assert six_section.default_for(SectionKind.CAMERA) == "Medium shot, eye-level"
        assert six_section.fixed_text(SectionKind.CONSTRAINTS) == six_section.constraints_literal

    def test_measure_by_unit(self, brief_sketch, high_fidelity):
        assert brief_sketch.measure("two words") == 9
        assert high_fidelity.measure("two words") == 2


class TestGrammarValidation:
    def test_style_literal_with_denied_term(self):
        raw = _raw_grammar()
        raw["style_literal"] = "Photorealistic pencil sketch"
        with pytest.raises(ValidationError):
            PromptGrammar.model_validate(raw)

    def test_missing_style_section(self):
        raw = _raw_grammar()
        raw["sections"] = [section for section in raw["sections"] if section["kinds"] != ["style"]]
        with pytest.raises(ValidationError):
            PromptGrammar.model_validate(raw)

    def test_constraints_section_needs_literal(self):
        raw = _raw_grammar("six-section-technical")
        raw["constraints_literal"] = None
        with pytest.raises(ValidationError):
            PromptGrammar.model_validate(raw)

    def test_kind_mapped_twice(self):
        raw = _raw_grammar()
        raw["sections"].append({"label": "EXTRA", "kinds": ["camera"]})
        with pytest.raises(ValidationError):
            PromptGrammar.model_validate(raw)

    def test_literal_must_fit_budget(self):
        raw = _raw_grammar()
        raw["max_budget"] = 50
        with pytest.raises(ValidationError):
            PromptGrammar.model_validate(raw)

    def test_labeled_layout_needs_labels(self):
        raw = _raw_grammar()
        raw["sections"][0]["label"] = None
        with pytest.raises(ValidationError):
            PromptGrammar.model_validate(raw)


class TestVocabularyPolicy:
    def test_denied_terms_in_is_case_insensitive_whole_word(self):
        policy = VocabularyPolicy(deny=["realistic", "full color"])
        assert policy.denied_terms_in("Realistic face in FULL COLOR") == ["realistic", "full color"]
        assert policy.denied_terms_in("unrealistic colorful") == []

"""Tests for the fallback composer."""

import pytest

from sketchboard.config.loaders import get_grammar
from sketchboard.prompting.fallback import ELLIPSIS, compose_fallback
from sketchboard.records import CameraSpec, Character, Location


def _block(prompt, label):
    for block in prompt.split("\n\n"):
        head, _, body = block.partition(": ")
        if head == label:
            return body
    raise AssertionError(f"no {label} block in {prompt!r}")


class TestFallbackContent:
    def test_keeps_first_subject_clauses(self, mara, old_library, brief_sketch):
        prompt = compose_fallback([mara], old_library, "reads quietly", brief_sketch)

        assert _block(prompt, "CHARACTERS") == "Mara, oval face, black wavy hair"
        assert _block(prompt, "ACTION") == "reads quietly"
        assert _block(prompt, "LOCATION") == "Old Library"
        assert _block(prompt, "STYLE") == brief_sketch.style_literal

    def test_camera_is_optional(self, brief_sketch):
        prompt = compose_fallback([], None, "waits", brief_sketch, camera=CameraSpec(angle="high angle"))
        assert _block(prompt, "SHOT") == "high angle"

    def test_location_details_are_dropped(self, brief_sketch):
        location = Location(name="Harbor", details={"weather": "stormy", "lighting": "flickering"})
        prompt = compose_fallback([], location, "waits", brief_sketch)

        assert _block(prompt, "LOCATION") == "Harbor"
        assert "stormy" not in prompt

    def test_constraints_literal_kept(self, six_section):
        prompt = compose_fallback([Character(name="Ada")], None, "waits", six_section)
        assert _block(prompt, "DO NOT INCLUDE") == six_section.constraints_literal

    def test_prose_grammar(self, mara, high_fidelity):
        prompt = compose_fallback([mara], None, "waves", high_fidelity)

        assert prompt.startswith("Mara, oval face.")
        assert prompt.endswith(high_fidelity.style_literal)


class TestDegenerateInput:
    @pytest.mark.parametrize("grammar_id", ["brief-sketch", "high-fidelity-form", "six-section-technical"])
    def test_empty_input_still_yields_prompt(self, grammar_id):
        grammar = get_grammar(grammar_id)
        prompt = compose_fallback([], None, "", grammar)

        assert prompt.strip()
        assert grammar.style_literal in prompt

    @pytest.mark.parametrize(
        "grammar_id,action",
        [
            ("brief-sketch", ("walks slowly " * 200).strip()),
            ("six-section-technical", ("walks slowly " * 300).strip()),
            ("high-fidelity-form", " ".join(["runs"] * 200)),
        ],
    )
    def test_oversized_action_is_clipped_to_budget(self, grammar_id, action):
        grammar = get_grammar(grammar_id)
        prompt = compose_fallback([Character(name="Ada")], Location(name="Pier"), action, grammar)

        assert prompt
        assert grammar.measure(prompt) <= grammar.max_budget
        assert ELLIPSIS in prompt
        assert "Ada" in prompt
        assert grammar.style_literal in prompt

    def test_deny_terms_removed_from_action(self, high_fidelity):
        prompt = compose_fallback([], None, "a realistic duel", high_fidelity)
        assert high_fidelity.vocabulary.denied_terms_in(prompt) == []

    def test_crowded_cast_drops_trailing_subjects(self, high_fidelity):
        cast = [Character(name=f"Captain Aurelia Vantorre of House Delacroix {number}") for number in range(12)]
        location = Location(name="The Grand Imperial Observatory of the Northern Reaches Beyond the Sea")
        action = " ".join(["climbs"] * 40)

        prompt = compose_fallback(cast, location, action, high_fidelity)

        assert high_fidelity.measure(prompt) <= high_fidelity.max_budget
        assert prompt.startswith("Captain Aurelia Vantorre of House Delacroix 0.")
        assert "Delacroix 11" not in prompt
        assert high_fidelity.style_literal in prompt

    def test_extra_subjects_dropped_before_location(self, brief_sketch):
        cast = [Character(name="Ada"), Character(name=("Bartholomew " * 80).strip())]
        action = ("walks slowly " * 60).strip()

        prompt = compose_fallback(cast, Location(name="Pier"), action, brief_sketch)

        assert len(prompt) <= brief_sketch.max_budget
        assert _block(prompt, "CHARACTERS") == "Ada"
        assert _block(prompt, "LOCATION") == "Pier"

    def test_oversized_location_name_is_dropped(self, brief_sketch):
        location = Location(name=("Harbor " * 150).strip())
        prompt = compose_fallback([Character(name="Ada")], location, "waits by the rail", brief_sketch)

        assert len(prompt) <= brief_sketch.max_budget
        assert "Harbor" not in prompt
        assert _block(prompt, "CHARACTERS") == "Ada"
        assert _block(prompt, "ACTION") == "waits by the rail"

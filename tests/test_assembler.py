"""Tests for prompt assembly: layout, vocabulary policy and budget trimming."""

import pytest
from hypothesis import given, strategies as st, settings

from sketchboard.config.loaders import get_grammar, list_grammar_ids
from sketchboard.core.exceptions import CompositionBudgetExceeded
from sketchboard.prompting.assemble import assemble, prepare_sections, strip_terms
from sketchboard.prompting.compose import compose, make_section
from sketchboard.records import AttributeRecord, Character, Location, SectionKind


def _labels(prompt):
    return [block.split(": ", 1)[0] for block in prompt.split("\n\n")]


def _block(prompt, label):
    for block in prompt.split("\n\n"):
        head, _, body = block.partition(": ")
        if head == label:
            return body
    raise AssertionError(f"no {label} block in {prompt!r}")


class TestLabeledLayout:
    def test_brief_sketch_sections(self, brief_sketch):
        ada = Character(name="Ada", attributes=AttributeRecord(clothing="blue coat"))
        sections = compose([ada], Location(name="Old Library"), "walks into the room", None, None, brief_sketch)

        prompt = assemble(sections, brief_sketch)

        assert _labels(prompt) == ["SHOT", "CHARACTERS", "ACTION", "LOCATION", "ATMOSPHERE", "STYLE"]
        assert "blue coat" in _block(prompt, "CHARACTERS")
        assert _block(prompt, "STYLE") == brief_sketch.style_literal
        assert _block(prompt, "ACTION") == "walks into the room"
        assert _block(prompt, "LOCATION") == "Old Library"

    def test_defaults_fill_empty_sections(self, brief_sketch):
        prompt = assemble(compose([], None, "rain falls", None, None, brief_sketch), brief_sketch)

        assert _block(prompt, "SHOT") == "Medium shot, eye-level"
        assert _block(prompt, "CHARACTERS") == "No characters in frame"
        assert _block(prompt, "ATMOSPHERE") == "neutral lighting"

    def test_six_section_technical(self, mara, old_library, six_section):
        prompt = assemble(compose([mara], old_library, "reads a letter", None, None, six_section), six_section)

        assert _labels(prompt) == [
            "LOCATION",
            "CHARACTER",
            "ACTION",
            "CAMERA",
            "ENVIRONMENT",
            "STYLE",
            "DO NOT INCLUDE",
        ]
        assert _block(prompt, "STYLE") == six_section.style_literal
        assert _block(prompt, "DO NOT INCLUDE") == six_section.constraints_literal

    def test_clause_cap_applies(self, brief_sketch):
        sections = [
            make_section(SectionKind.CAMERA, ["wide shot", "low angle", "dutch tilt"]),
            make_section(SectionKind.ACTION, ["waits"], pinned=1),
            *compose([], None, "", None, None, brief_sketch)[1:],
        ]
        assert _block(assemble(sections, brief_sketch), "SHOT") == "wide shot, low angle"


class TestProseLayout:
    def test_single_paragraph_without_labels(self, mara, high_fidelity):
        prompt = assemble(compose([mara], None, "turns around", None, None, high_fidelity), high_fidelity)

        assert "\n" not in prompt
        assert ":" not in prompt
        assert prompt.startswith("Mara, oval face")
        assert "Turns around." in prompt
        assert prompt.endswith(high_fidelity.style_literal)

    def test_texture_vocabulary_is_stripped(self, high_fidelity):
        lena = Character(
            name="Lena",
            attributes=AttributeRecord(hair="highly detailed silver hair", clothing="realistic textured cloak"),
        )
        prompt = assemble(compose([lena], None, "walks through the gate", None, None, high_fidelity), high_fidelity)

        assert high_fidelity.vocabulary.denied_terms_in(prompt) == []
        assert "silver hair" in prompt
        assert "wearing cloak" in prompt
        assert high_fidelity.measure(prompt) <= high_fidelity.max_budget


class TestVocabulary:
    def test_strip_terms_reports_removed(self):
        text, removed = strip_terms("photorealistic portrait, soft light", ["photorealistic", "full color"])
        assert text == "portrait, soft light"
        assert removed == ["photorealistic"]

    def test_whole_words_only(self):
        text, removed = strip_terms("unrealistic pose", ["realistic"])
        assert text == "unrealistic pose"
        assert removed == []

    def test_emptied_section_renders_default(self, brief_sketch):
        sections = compose([], None, "waits", None, None, brief_sketch)
        sections.append(make_section(SectionKind.ATMOSPHERE, ["photorealistic"]))

        assert _block(assemble(sections, brief_sketch), "ATMOSPHERE") == "neutral lighting"

    def test_action_of_only_denied_terms_is_kept(self, brief_sketch):
        sections = compose(
            [Character(name="Mara")], Location(name="Old Library"), "photorealistic", None, None, brief_sketch
        )

        prompt = assemble(sections, brief_sketch)

        assert _labels(prompt) == ["SHOT", "CHARACTERS", "ACTION", "LOCATION", "ATMOSPHERE", "STYLE"]
        assert _block(prompt, "ACTION") == "photorealistic"

    def test_denied_terms_still_stripped_from_action(self, high_fidelity):
        prompt = assemble(compose([], None, "walks past a detailed mural", None, None, high_fidelity), high_fidelity)

        assert "Walks past a mural." in prompt
        assert "detailed" not in prompt

    def test_names_and_place_identity_are_not_stripped(self, high_fidelity):
        dan = Character(name="Detailed Dan", attributes=AttributeRecord(clothing="textured cloak"))
        sections = compose([dan], Location(name="Rendered Hall"), "waits", None, None, high_fidelity)

        prompt = assemble(sections, high_fidelity)

        assert prompt.startswith("Detailed Dan, wearing cloak.")
        assert "Rendered Hall." in prompt
        assert "textured" not in prompt

    def test_fixed_literals_are_not_filtered(self, six_section):
        prepared = prepare_sections(compose([], None, "waits", None, None, six_section), six_section)
        constraints = next(section for section in prepared if section.kind is SectionKind.CONSTRAINTS)

        assert "photorealistic" in constraints.text


class TestBudget:
    def test_lowest_priority_clauses_trimmed_first(self, brief_sketch):
        mist = ("mist " * 60).strip()
        rain = ("rain " * 60).strip()
        wind = ("wind " * 60).strip()
        echo = ("echo " * 80).strip()
        sections = [
            make_section(SectionKind.SUBJECT, ["Ada"], pinned=1),
            make_section(SectionKind.ACTION, ["walks"], pinned=1),
            make_section(SectionKind.CONTINUITY, [echo]),
            make_section(SectionKind.ATMOSPHERE, [mist, rain, wind]),
            make_section(SectionKind.STYLE, [brief_sketch.style_literal], pinned=1),
        ]

        prompt = assemble(sections, brief_sketch)

        assert len(prompt) <= brief_sketch.max_budget
        assert "echo" not in prompt
        assert "wind" not in prompt
        assert mist in prompt and rain in prompt
        assert _block(prompt, "CHARACTERS") == "Ada"
        assert _block(prompt, "ACTION") == "walks"

    @pytest.mark.parametrize("grammar_id", ["brief-sketch", "six-section-technical"])
    def test_mandatory_content_over_budget_raises(self, grammar_id):
        grammar = get_grammar(grammar_id)
        action = ("walks slowly " * 200).strip()

        with pytest.raises(CompositionBudgetExceeded) as exc_info:
            assemble(compose([Character(name="Ada")], None, action, None, None, grammar), grammar)

        assert exc_info.value.grammar_id == grammar_id
        assert exc_info.value.size > exc_info.value.budget == grammar.max_budget
        assert exc_info.value.unit == "chars"

    def test_word_budget_over_budget_raises(self, high_fidelity):
        action = " ".join(["runs"] * 120)
        with pytest.raises(CompositionBudgetExceeded) as exc_info:
            assemble(compose([], None, action, None, None, high_fidelity), high_fidelity)
        assert exc_info.value.unit == "words"


_WORDS = st.sampled_from(["red", "long", "coat", "hair", "thin", "scar", "round", "tall", "quiet", "stone"])
_CLAUSE = st.lists(_WORDS, min_size=1, max_size=6).map(" ".join)
_ATTRIBUTES = st.builds(
    AttributeRecord,
    hair=_CLAUSE,
    clothing=_CLAUSE,
    build=_CLAUSE,
    distinctive_features=st.lists(_CLAUSE, max_size=8),
)
_CHARACTERS = st.lists(
    st.builds(Character, name=st.sampled_from(["Mara", "Jin", "Ada", "Theo"]), attributes=_ATTRIBUTES),
    max_size=3,
)
_ACTION = st.lists(st.sampled_from(["walks", "slowly", "toward", "the", "window"]), min_size=1, max_size=8).map(
    " ".join
)


@pytest.mark.property
class TestAssemblyProperties:
    @given(
        grammar_id=st.sampled_from(["brief-sketch", "high-fidelity-form", "six-section-technical"]),
        characters=_CHARACTERS,
        action=_ACTION,
        features=st.lists(_CLAUSE, max_size=10),
    )
    @settings(max_examples=100, deadline=None)
    def test_output_fits_budget_and_keeps_mandatory_content(self, grammar_id, characters, action, features):
        grammar = get_grammar(grammar_id)
        location = Location(name="Harbor", details={"prominent_features": features})
        sections = compose(characters, location, action, None, None, grammar)

        prompt = assemble(sections, grammar)

        assert grammar.measure(prompt) <= grammar.max_budget
        assert action in prompt.lower()
        assert grammar.style_literal in prompt
        for character in characters:
            assert character.name in prompt
        assert assemble(sections, grammar) == prompt

    def test_every_grammar_is_listed(self):
        assert set(list_grammar_ids()) == {"brief-sketch", "high-fidelity-form", "six-section-technical"}

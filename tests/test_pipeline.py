"""Tests for multi-panel sessions."""

from unittest.mock import MagicMock

import pytest

from sketchboard.config.loaders import get_grammar
from sketchboard.core.exceptions import ConfigurationError, PrimaryComposerUnavailable
from sketchboard.pipeline import StoryboardSession, summarize_subjects
from sketchboard.prompting.assemble import assemble
from sketchboard.prompting.compose import compose
from sketchboard.records import AttributeRecord, Character, Location, PanelBeat


@pytest.fixture()
def ada():
    return Character(name="Ada", attributes=AttributeRecord(clothing="blue coat", hair="short red hair"))


def _beat(number, action, characters, location=None):
    return PanelBeat(panel_number=number, characters=characters, location=location, action=action)


class TestSessionSetup:
    def test_default_grammar_from_settings(self, monkeypatch):
        from sketchboard.core import settings as settings_module

        monkeypatch.setattr(settings_module.settings, "default_grammar", "six-section-technical")
        assert StoryboardSession().grammar.id == "six-section-technical"

    def test_grammar_by_id(self):
        assert StoryboardSession("high-fidelity-form").grammar.id == "high-fidelity-form"

    def test_unknown_grammar(self):
        with pytest.raises(ConfigurationError):
            StoryboardSession("comic-deluxe")


class TestComposePanels:
    def test_primary_prompt_matches_direct_assembly(self, ada, brief_sketch):
        session = StoryboardSession(brief_sketch)
        location = Location(name="Old Library")

        result = session.compose_panel(_beat(1, "walks into the room", [ada], location))

        expected = assemble(compose([ada], location, "walks into the room", None, None, brief_sketch), brief_sketch)
        assert result.source == "primary"
        assert result.prompt == expected
        assert result.grammar == "brief-sketch"

    def test_second_panel_carries_first_panel_context(self, ada, brief_sketch):
        session = StoryboardSession(brief_sketch)
        session.compose_panel(_beat(1, "walks into the room", [ada]))

        second = session.compose_panel(_beat(2, "sits at the desk", [ada]))

        assert "ACTION: sits at the desk. The previous panel showed walks into the room." in second.prompt
        assert "Keep Ada consistent with that panel." in second.prompt

    def test_history_appended_per_panel(self, ada, brief_sketch):
        session = StoryboardSession(brief_sketch)
        session.compose_all([_beat(1, "waves", [ada]), _beat(2, "laughs", [ada]), _beat(4, "leaves", [])])

        entries = session.history.entries
        assert [entry.panel_number for entry in entries] == [1, 2, 4]
        assert entries[0].subject_summary == "Ada: short red hair, wearing blue coat"
        assert entries[2].subject_summary is None
        assert session.last_panel_number == 4

    @pytest.mark.parametrize("number", [1, 2])
    def test_out_of_order_panel_rejected(self, ada, brief_sketch, number):
        session = StoryboardSession(brief_sketch)
        session.compose_panel(_beat(2, "waves", [ada]))

        with pytest.raises(ValueError):
            session.compose_panel(_beat(number, "waves again", [ada]))
        assert len(session.history) == 1

    def test_fallback_when_budget_exceeded(self, ada, brief_sketch):
        session = StoryboardSession(brief_sketch)
        action = ("runs across the rooftops " * 60).strip()

        result = session.compose_panel(_beat(1, action, [ada]))

        assert result.source == "fallback"
        assert len(result.prompt) <= brief_sketch.max_budget
        assert len(session.history) == 1
        assert session.history.entries[0].action == action


class TestRefiner:
    def test_refined_prompt_used_when_valid(self, ada, brief_sketch):
        refiner = MagicMock()
        refiner.refine.return_value = f"CHARACTERS: Ada\n\nSTYLE: {brief_sketch.style_literal}"
        session = StoryboardSession(brief_sketch, refiner=refiner)

        result = session.compose_panel(_beat(1, "waves", [ada]))

        assert result.source == "refined"
        assert result.prompt == refiner.refine.return_value
        sections, draft, grammar = refiner.refine.call_args.args
        assert grammar is brief_sketch
        assert "ACTION: waves" in draft
        assert sections

    def test_refiner_failure_keeps_primary(self, ada, brief_sketch):
        refiner = MagicMock()
        refiner.refine.side_effect = PrimaryComposerUnavailable("model down")
        session = StoryboardSession(brief_sketch, refiner=refiner)

        result = session.compose_panel(_beat(1, "waves", [ada]))

        assert result.source == "primary"
        assert "ACTION: waves" in result.prompt

    @pytest.mark.parametrize(
        "refined",
        [
            "",
            "CHARACTERS: Ada",
            "STYLE: photorealistic render of Ada. {style}",
            "x" * 1200 + " {style}",
        ],
    )
    def test_invalid_refinement_rejected(self, ada, brief_sketch, refined):
        refiner = MagicMock()
        refiner.refine.return_value = refined.format(style=brief_sketch.style_literal)
        session = StoryboardSession(brief_sketch, refiner=refiner)

        result = session.compose_panel(_beat(1, "waves", [ada]))

        assert result.source == "primary"

    def test_refiner_not_called_on_fallback(self, ada, brief_sketch):
        refiner = MagicMock()
        session = StoryboardSession(brief_sketch, refiner=refiner)

        session.compose_panel(_beat(1, "x" * 1500, [ada]))

        refiner.refine.assert_not_called()


class TestSummaries:
    def test_summarize_subjects(self):
        hana = Character(name="Hana", attributes=AttributeRecord(face_shape="round face", hair="bob cut hair", age="20s"))
        assert summarize_subjects([hana, Character(name="Ox")]) == "Hana: round face, bob cut hair; Ox"

    def test_summary_for_no_subjects(self):
        assert summarize_subjects([]) is None


def test_session_grammars_are_independent():
    first = StoryboardSession("brief-sketch")
    second = StoryboardSession("high-fidelity-form")
    first.compose_panel(PanelBeat(panel_number=1, action="waves"))

    assert len(second.history) == 0
    assert second.grammar is get_grammar("high-fidelity-form")

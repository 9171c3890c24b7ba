from __future__ import annotations

import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

from sketchboard.core.exceptions import ConfigurationError
from sketchboard.records import SectionKind

# Kinds whose text always comes from the grammar rather than from composition.
FIXED_KINDS = frozenset({SectionKind.STYLE, SectionKind.CONSTRAINTS})


class VocabularyPolicy(BaseModel):
    allow: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)

    def denied_terms_in(self, text: str) -> list[str]:
        return [term for term in self.deny if re.search(rf"(?i)\b{re.escape(term)}\b", text)]


class GrammarSection(BaseModel):
    label: str | None = None
    kinds: list[SectionKind] = Field(min_length=1)
    default_text: str | None = None
    max_clauses: int | None = Field(default=None, ge=1)
    joiner: str = "; "

    @property
    def is_fixed(self) -> bool:
        return any(kind in FIXED_KINDS for kind in self.kinds)


class PromptGrammar(BaseModel):
    id: str = Field(min_length=1)
    description: str = ""
    layout: Literal["labeled", "prose"]
    budget_unit: Literal["chars", "words"]
    max_budget: int = Field(ge=1)
    sections: list[GrammarSection] = Field(min_length=1)
    style_literal: str = Field(min_length=1)
    constraints_literal: str | None = None
    vocabulary: VocabularyPolicy = Field(default_factory=VocabularyPolicy)
    fallback_subject_clauses: int = Field(default=3, ge=1)

    @model_validator(mode="after")
    def _check_consistency(self) -> "PromptGrammar":
        denied = self.vocabulary.denied_terms_in(self.style_literal)
        if denied:
            raise ValueError(f"style_literal of '{self.id}' contains deny-listed terms: {denied}")
        kinds = [kind for section in self.sections for kind in section.kinds]
        if SectionKind.STYLE not in kinds:
            raise ValueError(f"grammar '{self.id}' has no style section")
        if SectionKind.ACTION not in kinds:
            raise ValueError(f"grammar '{self.id}' has no action section")
        if SectionKind.CONSTRAINTS in kinds and not self.constraints_literal:
            raise ValueError(f"grammar '{self.id}' has a constraints section but no constraints_literal")
        if len(kinds) != len(set(kinds)):
            raise ValueError(f"grammar '{self.id}' maps a section kind more than once")
        if self.layout == "labeled" and any(not section.label for section in self.sections):
            raise ValueError(f"labeled grammar '{self.id}' has an unlabeled section")
        if self.measure(self.style_literal + " " + (self.constraints_literal or "")) >= self.max_budget:
            raise ValueError(f"fixed literals of '{self.id}' leave no room within max_budget")
        return self

    def measure(self, text: str) -> int:
        if self.budget_unit == "words":
            return len(text.split())
        return len(text)

    def fixed_text(self, kind: SectionKind) -> str | None:
        if kind is SectionKind.STYLE:
            return self.style_literal
        if kind is SectionKind.CONSTRAINTS:
            return self.constraints_literal
        return None

    def section_for(self, kind: SectionKind) -> GrammarSection | None:
        for section in self.sections:
            if kind in section.kinds:
                return section
        return None

    def default_for(self, kind: SectionKind) -> str | None:
        section = self.section_for(kind)
        return section.default_text if section else None


class PromptGrammarsV1(BaseModel):
    version: str
    grammars: list[PromptGrammar] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_ids(self) -> "PromptGrammarsV1":
        ids = [grammar.id for grammar in self.grammars]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate grammar ids: {ids}")
        return self


_CONFIG_DIR = Path(__file__).parent
_config_version = 0


@lru_cache(maxsize=1)
def load_prompt_grammars_v1() -> PromptGrammarsV1:
    """Load and validate the prompt grammar library."""
    path = _CONFIG_DIR / "prompt_grammars_v1.json"
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    try:
        return PromptGrammarsV1.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid grammar library {path.name}: {exc}") from exc


def clear_config_cache():
    """Clear all cached config data. Call this to force config reload."""
    global _config_version
    _config_version += 1
    load_prompt_grammars_v1.cache_clear()


def get_config_version() -> int:
    """Get current config version (incremented on each cache clear)."""
    return _config_version


def list_grammar_ids() -> list[str]:
    return [grammar.id for grammar in load_prompt_grammars_v1().grammars]


def get_grammar(grammar_id: str) -> PromptGrammar:
    lib = load_prompt_grammars_v1()
    for grammar in lib.grammars:
        if grammar.id == grammar_id:
            return grammar
    raise ConfigurationError(
        f"Unknown grammar_id: {grammar_id}",
        detail=f"Choose one of: {', '.join(list_grammar_ids())}",
    )

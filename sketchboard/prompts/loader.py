"""
Prompt loader for the instruction text sent to external model collaborators.

Prompts live in a versioned directory, one YAML mapping per domain:

    v1/
    ├── describe/   # Vision describer instructions (characters, locations)
    └── refine/     # Prompt refinement instructions

Usage:
    from sketchboard.prompts.loader import get_prompt, render_prompt

    template = get_prompt("prompt_describe_character")
    rendered = render_prompt("prompt_refine_panel", grammar_id="brief-sketch", draft="...")
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, StrictUndefined, TemplateSyntaxError

logger = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).resolve().parent
_VERSION = "v1"

_DOMAIN_DIRS = [
    "describe",
    "refine",
]


@lru_cache(maxsize=1)
def _jinja_env() -> Environment:
    """Create Jinja2 environment for prompt rendering."""
    return Environment(
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _read_domain_file(yaml_file: Path) -> dict[str, Any]:
    with yaml_file.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{yaml_file.name} must be a mapping at top level")
    return data


@lru_cache(maxsize=1)
def _load_prompts() -> dict[str, Any]:
    """Load every domain's prompts; template syntax errors fail fast."""
    prompts: dict[str, Any] = {}
    version_dir = _PROMPTS_DIR / _VERSION
    for domain in _DOMAIN_DIRS:
        domain_dir = version_dir / domain
        if not domain_dir.exists():
            continue
        for yaml_file in sorted(domain_dir.glob("*.yaml")):
            data = _read_domain_file(yaml_file)
            for key, value in data.items():
                template = value.get("template") if isinstance(value, dict) else value
                if isinstance(template, str):
                    try:
                        _jinja_env().parse(template)
                    except TemplateSyntaxError as e:
                        raise ValueError(f"Invalid Jinja2 template in {yaml_file}:{key}: {e}") from e
            prompts.update(data)
    return prompts


def get_prompt(name: str) -> str:
    """
    Get a prompt template by name.

    Supports a plain string value or a mapping with a ``template`` key and
    optional ``required_variables``.

    Raises:
        KeyError: If prompt not found or not a string
    """
    value = _load_prompts().get(name)
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and "template" in value:
        return value["template"]
    raise KeyError(f"Prompt '{name}' not found or not a string")


def get_prompt_data(name: str) -> Any:
    """Get a non-template value (e.g. a list of subject kinds) by key."""
    prompts = _load_prompts()
    if name not in prompts:
        raise KeyError(f"Prompt data '{name}' not found")
    return prompts[name]


def extract_template_variables(template: str) -> set[str]:
    """Base variable names referenced as ``{{ name }}`` in a template."""
    return set(re.findall(r"\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*)", template))


def check_required_variables(name: str, context: dict[str, Any]) -> list[str]:
    """Return the required variables of ``name`` missing from ``context``."""
    value = _load_prompts().get(name)
    if isinstance(value, dict) and value.get("required_variables"):
        required = list(value["required_variables"])
    else:
        required = sorted(extract_template_variables(get_prompt(name)))
    return [variable for variable in required if variable not in context]


def render_prompt(name: str, validate: bool = False, **context: Any) -> str:
    """
    Render a prompt template with the given context.

    Raises:
        ValueError: If validate=True and required variables are missing
    """
    if validate:
        missing = check_required_variables(name, context)
        if missing:
            raise ValueError(f"Missing required variables for '{name}': {missing}")
    template = get_prompt(name)
    return _jinja_env().from_string(template).render(**context).strip()


def list_prompts(domain: str | None = None) -> list[str]:
    """List available prompt names, optionally for one domain."""
    if domain is None:
        return list(_load_prompts().keys())
    domain_dir = _PROMPTS_DIR / _VERSION / domain
    if not domain_dir.exists():
        return []
    names: list[str] = []
    for yaml_file in sorted(domain_dir.glob("*.yaml")):
        names.extend(_read_domain_file(yaml_file).keys())
    return names


def clear_cache() -> None:
    """Clear all cached prompts (useful for hot-reload scenarios)."""
    _load_prompts.cache_clear()
    _jinja_env.cache_clear()

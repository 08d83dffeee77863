"""Utilities for rendering LLM prompts using Jinja2 templates."""

import hashlib
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from namelist_tree import format_weight

PROMPTS_PATH = Path(__file__).parent / "prompts"
_env = Environment(
    loader=FileSystemLoader(PROMPTS_PATH),
    autoescape=False,
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)
_env.filters["weight"] = format_weight


def render_prompt(template_name: str, context: dict[str, Any]) -> str:
    """Render a Jinja2 template from the prompts directory."""
    template = _env.get_template(template_name)
    return template.render(**context)


def template_digest(template_name: str) -> str:
    """Name plus content hash of a template, so edits invalidate cached results."""
    source, _, _ = _env.loader.get_source(_env, template_name)
    digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:16]
    return f"{template_name}:{digest}"

# orchestration/output_writer.py
"""Serializes a resolved tree and its run outcomes into the two artifacts."""

from __future__ import annotations

import re

import structlog
from config import settings
from namelist_tree import NameListTree, format_weight

from models import LocalisationBase, RunResult

logger = structlog.get_logger(__name__)

INDENT = "    "
_BARE_TOKEN_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.:'\-]*$")


def _format_key(key: str) -> str:
    if _BARE_TOKEN_RE.match(key) and not re.fullmatch(r"[-+]?\d+(\.\d+)?", key):
        return key
    escaped = key.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _escape_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _render_node(
    tree: NameListTree,
    index: int,
    run_result: RunResult,
    lines: list[str],
    depth: int,
    failed_marker: str,
) -> None:
    resolved = tree[index]
    node = resolved.node
    pad = INDENT * depth
    inner = pad + INDENT
    lines.append(f"{pad}{node.name} = {{")
    if node.weight is not None:
        weight = node.weight_text or format_weight(node.weight)
        lines.append(f"{inner}weight = {weight}")
    for key, value in node.attributes:
        lines.append(f"{inner}{key} = {value}")
    if not node.is_leaf:
        for child in resolved.children:
            _render_node(tree, child, run_result, lines, depth + 1, failed_marker)
    elif node.localisation_keys:
        lines.extend(f"{inner}{_format_key(key)}" for key in node.localisation_keys)
    else:
        outcome = run_result.get(index)
        if outcome is not None and outcome.result is not None:
            lines.extend(f"{inner}{key}" for key in outcome.result.localisation)
        else:
            reason = outcome.error if outcome and outcome.error else "not processed"
            reason = " ".join(reason.split())
            lines.append(f"{inner}# {failed_marker}: {reason}")
    lines.append(f"{pad}}}")


def render_namelist(
    tree: NameListTree,
    run_result: RunResult,
    failed_marker: str = settings.FAILED_NODE_MARKER,
) -> str:
    """Render the name list configuration in the DSL's own block syntax.

    ``prefix`` and ``theme`` only steer generation and are not emitted.
    """
    lines: list[str] = []
    _render_node(tree, 0, run_result, lines, 0, failed_marker)
    return "\n".join(lines) + "\n"


def collect_localisation(
    tree: NameListTree, run_result: RunResult, base: LocalisationBase
) -> dict[str, str]:
    """Generated and seeded entries in tree order, then the rest of the base.

    The base text wins when a key exists in both.
    """
    entries: dict[str, str] = {}
    for resolved in tree:
        outcome = run_result.get(resolved.index)
        if outcome is None or outcome.result is None:
            continue
        for key, text in outcome.result.localisation.items():
            if key in entries:
                continue
            base_text = base.get(key)
            entries[key] = base_text if base_text is not None else text
    for key, text in base.entries.items():
        entries.setdefault(key, text)
    return entries


def render_localisation(
    tree: NameListTree,
    run_result: RunResult,
    base: LocalisationBase | None = None,
    language: str = settings.LOCALISATION_LANGUAGE,
) -> str:
    base = base or LocalisationBase()
    entries = collect_localisation(tree, run_result, base)
    lines = [f"{language}:"]
    lines.extend(f'{INDENT}{key}:0 "{_escape_text(text)}"' for key, text in entries.items())
    return "\n".join(lines) + "\n"


def find_passthrough_keys(tree: NameListTree, base: LocalisationBase) -> list[str]:
    """Explicit author keys that have no localisation entry anywhere."""
    return [
        key
        for resolved in tree
        for key in resolved.node.localisation_keys
        if key not in base
    ]

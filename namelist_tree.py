# namelist_tree.py
"""Resolved name list tree: inherited prefixes, keys and cache signatures.

The parsed :class:`ConfigNode` tree is flattened once into an arena of
:class:`ResolvedNode` entries in pre-order. Nodes refer to their parent and
children by index, and every attribute derived from ancestors (effective
prefix, path, key stem, signature) is computed during that single pass and
never recomputed.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterator
from dataclasses import dataclass

import structlog
from core.errors import ConfigInvariantError

from models import ConfigNode

logger = structlog.get_logger(__name__)

SIGNATURE_VERSION = 1


@dataclass(frozen=True)
class GenerationContext:
    """Everything besides the node itself that shapes generated names."""

    lore: str
    model: str = ""
    temperature: float | None = None
    top_p: float | None = None
    template: str = ""


@dataclass(frozen=True)
class ResolvedNode:
    index: int
    parent: int | None
    depth: int
    node: ConfigNode
    path: tuple[str, ...]
    effective_prefix: str
    children: tuple[int, ...] = ()
    key_stem: str | None = None
    signature: str | None = None

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def is_leaf(self) -> bool:
        return self.node.is_leaf

    @property
    def is_generated(self) -> bool:
        return self.node.is_generated

    @property
    def display_path(self) -> str:
        return ".".join(self.path)

    def key_for(self, name: str) -> str:
        """Localisation key for a generated display name of this leaf."""
        if self.key_stem is None:
            raise ValueError(f"'{self.display_path}' is not a generation target")
        return f"{self.key_stem}_{sanitize_key(name)}"


def sanitize_key(name: str) -> str:
    """Turn a display name into a localisation key fragment."""
    return "".join(
        c.upper() if c.isascii() and c.isalnum() else "_" for c in name.strip()
    )


def format_weight(value: int | float | None) -> str:
    """Render a weight the way the name list emits it."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_key_stem(path: tuple[str, ...], effective_prefix: str) -> str:
    segments = [sanitize_key(part) for part in path[1:]] or [sanitize_key(path[0])]
    prefix = effective_prefix.rstrip("_")
    return "_".join(part for part in [prefix, *segments] if part)


def compute_signature(
    path: tuple[str, ...],
    effective_prefix: str,
    weight: int | float | None,
    theme: str,
    context: GenerationContext,
) -> str:
    """Content address of one leaf's generation request."""
    payload = {
        "version": SIGNATURE_VERSION,
        "path": list(path),
        "prefix": effective_prefix,
        "weight": weight,
        "theme": theme,
        "lore": context.lore,
        "model": context.model,
        "temperature": context.temperature,
        "top_p": context.top_p,
        "template": context.template,
    }
    canonical = json.dumps(
        payload, sort_keys=True, ensure_ascii=False, separators=(",", ":")
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class NameListTree:
    """Arena of resolved nodes in pre-order; index 0 is the root."""

    def __init__(self, nodes: list[ResolvedNode]) -> None:
        self.nodes = nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, index: int) -> ResolvedNode:
        return self.nodes[index]

    def __iter__(self) -> Iterator[ResolvedNode]:
        return iter(self.nodes)

    @property
    def root(self) -> ResolvedNode:
        return self.nodes[0]

    def leaves(self) -> list[ResolvedNode]:
        return [n for n in self.nodes if n.is_leaf]

    def generation_targets(self) -> list[ResolvedNode]:
        return [n for n in self.nodes if n.is_generated]

    def children_of(self, index: int) -> list[ResolvedNode]:
        return [self.nodes[i] for i in self.nodes[index].children]

    def find(self, *path: str) -> ResolvedNode | None:
        for node in self.nodes:
            if node.path == path:
                return node
        return None


def _flatten(
    node: ConfigNode,
    parent: ResolvedNode | None,
    inherited_prefix: str,
    context: GenerationContext,
    arena: list[ResolvedNode | None],
) -> int:
    index = len(arena)
    arena.append(None)
    path = (parent.path if parent else ()) + (node.name,)
    effective_prefix = node.prefix if node.prefix is not None else inherited_prefix
    placeholder = ResolvedNode(
        index=index,
        parent=parent.index if parent else None,
        depth=parent.depth + 1 if parent else 0,
        node=node,
        path=path,
        effective_prefix=effective_prefix,
    )
    children = tuple(
        _flatten(child, placeholder, effective_prefix, context, arena)
        for child in node.children
    )
    key_stem = None
    signature = None
    if node.is_generated:
        key_stem = build_key_stem(path, effective_prefix)
        signature = compute_signature(
            path, effective_prefix, node.weight, node.effective_theme, context
        )
    arena[index] = ResolvedNode(
        index=index,
        parent=placeholder.parent,
        depth=placeholder.depth,
        node=node,
        path=path,
        effective_prefix=effective_prefix,
        children=children,
        key_stem=key_stem,
        signature=signature,
    )
    return index


def _underscore_cuts(key: str) -> list[int]:
    return [i for i, ch in enumerate(key) if ch == "_"]


def _validate_keys(nodes: list[ResolvedNode]) -> None:
    explicit: dict[str, ResolvedNode] = {}
    stems: dict[str, ResolvedNode] = {}
    for node in nodes:
        for key in node.node.localisation_keys:
            owner = explicit.get(key)
            if owner is not None:
                raise ConfigInvariantError(
                    f"Localisation key '{key}' is declared by both "
                    f"'{owner.display_path}' and '{node.display_path}'"
                )
            explicit[key] = node
        if node.key_stem is not None:
            owner = stems.get(node.key_stem)
            if owner is not None:
                raise ConfigInvariantError(
                    f"Generated key namespace '{node.key_stem}' is shared by "
                    f"'{owner.display_path}' and '{node.display_path}'"
                )
            stems[node.key_stem] = node

    for stem, node in stems.items():
        for cut in _underscore_cuts(stem):
            owner = stems.get(stem[:cut])
            if owner is not None:
                raise ConfigInvariantError(
                    f"Generated key namespace '{stem}' of '{node.display_path}' "
                    f"lies inside '{owner.key_stem}' of '{owner.display_path}'"
                )

    for key, node in explicit.items():
        for cut in _underscore_cuts(key) + [len(key)]:
            owner = stems.get(key[:cut])
            if owner is not None:
                raise ConfigInvariantError(
                    f"Explicit key '{key}' of '{node.display_path}' collides with "
                    f"keys generated for '{owner.display_path}'"
                )


def resolve_tree(
    root: ConfigNode, context: GenerationContext, default_prefix: str = ""
) -> NameListTree:
    """Resolve inheritance for a parsed tree and validate key uniqueness.

    Raises:
        ConfigInvariantError: if two nodes would emit the same key.
    """
    arena: list[ResolvedNode | None] = []
    _flatten(root, None, default_prefix, context, arena)
    nodes = [n for n in arena if n is not None]
    _validate_keys(nodes)
    tree = NameListTree(nodes)
    logger.info(
        "Resolved name list tree.",
        root=root.name,
        nodes=len(tree),
        leaves=len(tree.leaves()),
        generation_targets=len(tree.generation_targets()),
    )
    return tree

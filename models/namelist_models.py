# models/namelist_models.py
"""Data models for parsed name list trees and generation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class ConfigNode:
    """A block of the name list DSL as written by the author.

    Leaves (blocks without nested blocks) are generation targets unless they
    carry explicit localisation keys. Structural nodes only group children
    and propagate their prefix.
    """

    name: str
    prefix: str | None = None
    weight: int | float | None = None
    weight_text: str | None = None
    localisation_keys: tuple[str, ...] = ()
    theme: str | None = None
    attributes: tuple[tuple[str, str], ...] = ()
    children: tuple[ConfigNode, ...] = ()
    line: int = 0

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def localisation_key(self) -> str | None:
        return self.localisation_keys[0] if self.localisation_keys else None

    @property
    def is_generated(self) -> bool:
        """True when the node should be filled in by the generator."""
        return self.is_leaf and not self.localisation_keys

    @property
    def effective_theme(self) -> str:
        if self.theme:
            return self.theme
        return self.name.replace("_", " ").strip()


class GenerationResult(BaseModel):
    """Names produced for one leaf and the localisation derived from them."""

    model_config = ConfigDict(frozen=True)

    names: list[str] = Field(default_factory=list)
    localisation: dict[str, str] = Field(default_factory=dict)

    @property
    def keys(self) -> list[str]:
        return list(self.localisation)


class CacheEntry(BaseModel):
    """A persisted generation result, addressed by its signature."""

    model_config = ConfigDict(frozen=True)

    signature: str
    path: list[str]
    names: list[str]
    localisation: dict[str, str]
    created_at: float = 0.0

    def to_result(self) -> GenerationResult:
        return GenerationResult(
            names=list(self.names), localisation=dict(self.localisation)
        )


class NodeAction(str, Enum):
    """What the orchestrator did for a leaf."""

    SKIP = "skip"
    SEED = "seed"
    REUSE = "reuse"
    GENERATE = "generate"
    FAILED = "failed"


@dataclass
class NodeOutcome:
    index: int
    path: tuple[str, ...]
    action: NodeAction
    result: GenerationResult | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.action is NodeAction.FAILED


@dataclass
class RunResult:
    """Per-leaf outcomes of one orchestrator run, keyed by node index."""

    outcomes: dict[int, NodeOutcome] = field(default_factory=dict)
    generator_calls: int = 0

    def add(self, outcome: NodeOutcome) -> None:
        self.outcomes[outcome.index] = outcome

    def get(self, index: int) -> NodeOutcome | None:
        return self.outcomes.get(index)

    def count(self, action: NodeAction) -> int:
        return sum(1 for o in self.outcomes.values() if o.action is action)

    @property
    def failed(self) -> list[NodeOutcome]:
        return [o for _, o in sorted(self.outcomes.items()) if o.failed]

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> dict[str, int]:
        return {action.value: self.count(action) for action in NodeAction}


@dataclass(frozen=True)
class LocalisationBase:
    """Pre-existing localisation, read-only for the whole run."""

    entries: dict[str, str] = field(default_factory=dict)
    language: str | None = None

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, key: str) -> str | None:
        return self.entries.get(key)

    def in_namespace(self, stem: str) -> dict[str, str]:
        """Entries whose key belongs to the generated namespace ``stem_``."""
        marker = f"{stem}_"
        return {k: v for k, v in self.entries.items() if k.startswith(marker)}

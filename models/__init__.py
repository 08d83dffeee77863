"""Central package for name list data models."""

from .namelist_models import (
    CacheEntry,
    ConfigNode,
    GenerationResult,
    LocalisationBase,
    NodeAction,
    NodeOutcome,
    RunResult,
)

__all__ = [
    "ConfigNode",
    "LocalisationBase",
    "GenerationResult",
    "CacheEntry",
    "NodeAction",
    "NodeOutcome",
    "RunResult",
]

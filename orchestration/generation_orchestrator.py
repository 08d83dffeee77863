# orchestration/generation_orchestrator.py
"""Walks a resolved name list tree and fills in every generation target."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol

import structlog
from config import settings
from core.errors import ProviderError
from namelist_tree import NameListTree, ResolvedNode, sanitize_key
from prompt_renderer import render_prompt
from storage.cache_store import CacheStore

from models import (
    CacheEntry,
    GenerationResult,
    LocalisationBase,
    NodeAction,
    NodeOutcome,
    RunResult,
)

if TYPE_CHECKING:  # pragma: no cover - type hints
    from ui.rich_display import RichDisplayManager

logger = structlog.get_logger(__name__)


class NameGenerator(Protocol):
    """Capability that turns a prompt and lore context into candidate names."""

    async def generate(self, prompt: str, context: str) -> list[str]: ...


def build_generation_result(
    node: ResolvedNode, names: Iterable[str]
) -> GenerationResult:
    """Derive localisation keys for generated names.

    Blank names and names without any key-safe character are dropped; when two
    names map to the same key the first one wins.
    """
    localisation: dict[str, str] = {}
    kept: list[str] = []
    for raw_name in names:
        name = raw_name.strip() if isinstance(raw_name, str) else ""
        if not name or not any(c.isalnum() for c in sanitize_key(name)):
            continue
        key = node.key_for(name)
        if key in localisation:
            continue
        localisation[key] = name
        kept.append(name)
    return GenerationResult(names=kept, localisation=localisation)


class GenerationOrchestrator:
    """Decides per leaf whether to skip, seed, reuse or generate.

    Leaves are processed in pre-order. ``max_concurrency`` bounds how many
    leaves are in flight; with the default of 1 the walk is strictly
    sequential. A provider failure is recorded on its node and never stops
    the remaining leaves.
    """

    def __init__(
        self,
        generator: NameGenerator,
        cache: CacheStore,
        lore: str,
        localisation_base: LocalisationBase | None = None,
        display: RichDisplayManager | None = None,
        max_concurrency: int = 1,
        prompt_template: str = settings.PROMPT_TEMPLATE,
    ) -> None:
        self.generator = generator
        self.cache = cache
        self.lore = lore
        self.localisation_base = localisation_base or LocalisationBase()
        self.display = display
        self.max_concurrency = max(max_concurrency, 1)
        self.prompt_template = prompt_template
        self.generator_calls = 0

    def build_prompt(self, node: ResolvedNode) -> str:
        return render_prompt(
            self.prompt_template,
            {
                "path": list(node.path),
                "theme": node.node.effective_theme,
                "prefix": node.effective_prefix,
                "weight": node.node.weight,
            },
        )

    async def run(self, tree: NameListTree) -> RunResult:
        """Produce an outcome for every leaf of ``tree``."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        result = RunResult()

        async def _guarded(node: ResolvedNode) -> NodeOutcome:
            async with semaphore:
                return await self._process_leaf(node)

        leaves = tree.leaves()
        logger.info(
            "Starting name generation.",
            leaves=len(leaves),
            concurrency=self.max_concurrency,
        )
        outcomes = await asyncio.gather(*(_guarded(node) for node in leaves))
        for outcome in outcomes:
            result.add(outcome)
        result.generator_calls = self.generator_calls
        self._log_summary(result)
        return result

    async def _process_leaf(self, node: ResolvedNode) -> NodeOutcome:
        self._notify(node, "processing")
        if node.node.localisation_keys:
            logger.debug(
                "Skipping leaf with explicit keys.",
                node=node.display_path,
                keys=len(node.node.localisation_keys),
            )
            return self._finish(NodeOutcome(node.index, node.path, NodeAction.SKIP))

        seeded = self.localisation_base.in_namespace(node.key_stem or "")
        if seeded:
            logger.info(
                "Seeding leaf from localisation base.",
                node=node.display_path,
                entries=len(seeded),
            )
            return self._finish(
                NodeOutcome(
                    node.index,
                    node.path,
                    NodeAction.SEED,
                    result=GenerationResult(
                        names=list(seeded.values()), localisation=seeded
                    ),
                )
            )

        loop = asyncio.get_running_loop()
        entry = await loop.run_in_executor(None, self.cache.lookup, node.signature)
        if entry is not None:
            logger.info(
                "Reusing cached names.",
                node=node.display_path,
                names=len(entry.localisation),
            )
            return self._finish(
                NodeOutcome(
                    node.index, node.path, NodeAction.REUSE, result=entry.to_result()
                )
            )

        try:
            generated = await self._generate(node)
        except ProviderError as exc:
            logger.error(
                "Generation failed for node; continuing.",
                node=node.display_path,
                error=str(exc),
            )
            return self._finish(
                NodeOutcome(node.index, node.path, NodeAction.FAILED, error=str(exc))
            )

        entry = CacheEntry(
            signature=node.signature,
            path=list(node.path),
            names=generated.names,
            localisation=generated.localisation,
        )
        stored = await loop.run_in_executor(
            None, self.cache.store, node.signature, entry
        )
        if not stored:
            logger.warning(
                "Generated names could not be cached; they will be regenerated next run.",
                node=node.display_path,
            )
        return self._finish(
            NodeOutcome(node.index, node.path, NodeAction.GENERATE, result=generated)
        )

    async def _generate(self, node: ResolvedNode) -> GenerationResult:
        logger.info(
            "Generating names.",
            node=node.display_path,
            theme=node.node.effective_theme,
        )
        try:
            prompt = self.build_prompt(node)
            self.generator_calls += 1
            names = await self.generator.generate(prompt, self.lore)
        except ProviderError:
            raise
        except Exception as exc:
            logger.error(
                "Name generation raised an unexpected error.",
                node=node.display_path,
                exc_info=True,
            )
            raise ProviderError(f"{type(exc).__name__}: {exc}") from exc
        result = build_generation_result(node, names or [])
        if not result.localisation:
            raise ProviderError("Provider returned no usable names.")
        return result

    def _notify(self, node: ResolvedNode, step: str) -> None:
        if self.display is not None:
            self.display.update(step=f"{node.display_path} ({step})")

    def _finish(self, outcome: NodeOutcome) -> NodeOutcome:
        if self.display is not None:
            self.display.record(outcome.action)
        return outcome

    def _log_summary(self, result: RunResult) -> None:
        logger.info(
            "Name generation finished.",
            generator_calls=result.generator_calls,
            **result.summary(),
        )
        for outcome in result.failed:
            logger.error(
                "Node left unfilled.",
                node=".".join(outcome.path),
                error=outcome.error,
            )

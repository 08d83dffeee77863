# orchestration/cli_runner.py
"""Command-line runner wiring parser, cache, generator and writer together."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

import structlog
from config import settings
from core.errors import ConfigInvariantError, ParseError, WriteError
from core.llm_interface import LLMService
from jinja2 import TemplateNotFound
from namelist_tree import GenerationContext, resolve_tree
from parsing import parse_localisation, parse_namelist
from prompt_renderer import template_digest
from storage.cache_store import CacheStore
from storage.file_manager import FileManager
from ui.rich_display import RichDisplayManager
from utils.logging import setup_logging

from models import LocalisationBase
from orchestration.generation_orchestrator import (
    GenerationOrchestrator,
    NameGenerator,
)
from orchestration.output_writer import (
    find_passthrough_keys,
    render_localisation,
    render_namelist,
)

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_NODE_FAILURES = 1
EXIT_CONFIG_ERROR = 2
EXIT_WRITE_ERROR = 3
EXIT_INTERRUPTED = 130


@dataclass
class RunOptions:
    structure: str = settings.STRUCTURE_FILE
    lore: str = settings.LORE_FILE
    localisation_base: str | None = settings.LOCALISATION_BASE_FILE
    cache_dir: str = settings.CACHE_DIR
    output: str = settings.OUTPUT_FILE
    localisation_output: str = settings.LOCALISATION_OUTPUT_FILE
    prefix: str = settings.DEFAULT_PREFIX
    model: str = settings.GENERATION_MODEL
    concurrency: int = settings.MAX_CONCURRENT_GENERATIONS
    clear_cache: bool = False
    show_progress: bool = settings.ENABLE_RICH_PROGRESS


async def run_generation(
    options: RunOptions, generator: NameGenerator | None = None
) -> int:
    """Run one full generation pass and write both artifacts.

    Raises:
        ParseError, ConfigInvariantError: before any generation happens.
        OSError: when an input file cannot be read.
        WriteError: when an output file cannot be written.
    """
    file_manager = FileManager(options.output, options.localisation_output)
    structure_text = await file_manager.read_text(options.structure)
    lore = await file_manager.read_text(options.lore)
    base = LocalisationBase()
    if options.localisation_base:
        base = parse_localisation(
            await file_manager.read_text(options.localisation_base),
            options.localisation_base,
        )

    root = parse_namelist(structure_text, options.structure)
    context = GenerationContext(
        lore=lore,
        model=options.model,
        temperature=settings.TEMPERATURE_GENERATION,
        top_p=settings.LLM_TOP_P,
        template=template_digest(settings.PROMPT_TEMPLATE),
    )
    tree = resolve_tree(root, context, default_prefix=options.prefix)

    cache = CacheStore(options.cache_dir)
    if options.clear_cache:
        cache.clear()

    owned_service: LLMService | None = None
    if generator is None:
        owned_service = LLMService(model_name=options.model)
        generator = owned_service
    display: RichDisplayManager | None = None
    if options.show_progress:
        display = RichDisplayManager(request_counter=generator)
        display.update(name_list=tree.root.name)
        display.start()
    try:
        orchestrator = GenerationOrchestrator(
            generator,
            cache,
            lore,
            localisation_base=base,
            display=display,
            max_concurrency=options.concurrency,
        )
        result = await orchestrator.run(tree)
    finally:
        if display is not None:
            await display.stop()
        if owned_service is not None:
            await owned_service.aclose()

    language = base.language or settings.LOCALISATION_LANGUAGE
    namelist_text = render_namelist(tree, result)
    localisation_text = render_localisation(tree, result, base, language)
    passthrough = find_passthrough_keys(tree, base)
    if passthrough:
        logger.info(
            "Explicit keys passed through without localisation.",
            count=len(passthrough),
            keys=", ".join(passthrough[:10]),
        )
    await file_manager.write_outputs(namelist_text, localisation_text)

    if not result.ok:
        logger.warning(
            "Some nodes could not be generated; their slots are marked in the output.",
            failed=", ".join(".".join(o.path) for o in result.failed),
        )
        return EXIT_NODE_FAILURES
    return EXIT_OK


def run(options: RunOptions) -> int:
    """Configure logging, run generation and map failures to exit codes."""
    setup_logging()
    start = time.perf_counter()
    logger.info("Initializing generation process.", structure=options.structure)
    try:
        exit_code = asyncio.run(run_generation(options))
    except (ParseError, ConfigInvariantError) as err:
        logger.error("Invalid name list configuration: %s", err)
        return EXIT_CONFIG_ERROR
    except TemplateNotFound as err:
        logger.error("Prompt template not found: %s", err)
        return EXIT_CONFIG_ERROR
    except WriteError as err:
        logger.error("Could not write output: %s", err)
        return EXIT_WRITE_ERROR
    except OSError as err:
        logger.error("Could not read input: %s", err)
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.info("Generation interrupted; no output written.")
        return EXIT_INTERRUPTED
    logger.info(
        "Completed.", elapsed_seconds=round(time.perf_counter() - start, 2)
    )
    return exit_code

# main.py
"""CLI entry point for the name list generator."""

from __future__ import annotations

import argparse
import sys

from config import settings

from orchestration.cli_runner import RunOptions, run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fill in a game name list and its localisation with an LLM."
    )
    parser.add_argument(
        "--structure", default=settings.STRUCTURE_FILE, help="Name list DSL file"
    )
    parser.add_argument(
        "--lore", default=settings.LORE_FILE, help="Lore/story text file"
    )
    parser.add_argument(
        "--localisation-base",
        default=settings.LOCALISATION_BASE_FILE,
        help="Existing localisation used to seed or override entries",
    )
    parser.add_argument("--cache-dir", default=settings.CACHE_DIR)
    parser.add_argument("--output", default=settings.OUTPUT_FILE)
    parser.add_argument(
        "--localisation-output", default=settings.LOCALISATION_OUTPUT_FILE
    )
    parser.add_argument(
        "--prefix", default=settings.DEFAULT_PREFIX, help="Prefix inherited by the root"
    )
    parser.add_argument("--model", default=settings.GENERATION_MODEL)
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.MAX_CONCURRENT_GENERATIONS,
        help="Leaves generated in parallel",
    )
    parser.add_argument(
        "--clear-cache", action="store_true", help="Delete cached results first"
    )
    parser.add_argument(
        "--no-progress", action="store_true", help="Disable the live progress panel"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and run generation."""
    args = build_parser().parse_args(argv)
    options = RunOptions(
        structure=args.structure,
        lore=args.lore,
        localisation_base=args.localisation_base,
        cache_dir=args.cache_dir,
        output=args.output,
        localisation_output=args.localisation_output,
        prefix=args.prefix,
        model=args.model,
        concurrency=max(args.concurrency, 1),
        clear_cache=args.clear_cache,
        show_progress=settings.ENABLE_RICH_PROGRESS and not args.no_progress,
    )
    return run(options)


if __name__ == "__main__":
    sys.exit(main())

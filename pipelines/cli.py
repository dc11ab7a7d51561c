"""Command-line entry point for ragcrawl.

    ragcrawl index https://docs.example.com --max-depth 2 --max-pages 50
    ragcrawl query "how do I configure retries?" --top-k 5
    ragcrawl count
    ragcrawl delete 42
    ragcrawl init-db

Results are printed to stdout as JSON; logs go to stderr.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from config.settings import AppConfig
from indexer.errors import RagError
from indexer.models import QueryOptions
from observability.logging import setup_logging

from .bootstrap import build_runtime
from .crawler import CrawlBudget, ScopeFilters

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ragcrawl", description="Crawl websites and query them by meaning")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--log-file", help="Also write JSON logs to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index = subparsers.add_parser("index", help="Crawl a website and index its pages")
    index.add_argument("url", help="Seed URL")
    index.add_argument("--max-depth", type=int, default=2, help="Maximum link distance from the seed")
    index.add_argument("--max-pages", type=int, default=50, help="Maximum number of pages to emit")
    index.add_argument("--include", action="append", default=[], help="Only follow URLs containing this")
    index.add_argument("--exclude", action="append", default=[], help="Never follow URLs containing this")

    query = subparsers.add_parser("query", help="Retrieve context for a question")
    query.add_argument("text", help="Query text")
    query.add_argument("--top-k", type=int, help="Number of results")
    query.add_argument("--threshold", type=float, help="Minimum similarity in [0, 1]")
    query.add_argument("--no-metadata", action="store_true", help="Strip document metadata from results")
    query.add_argument("--context-only", action="store_true", help="Print the assembled context as plain text")

    subparsers.add_parser("count", help="Print the number of stored documents")

    delete = subparsers.add_parser("delete", help="Delete a document by id")
    delete.add_argument("document_id", type=int)

    subparsers.add_parser("init-db", help="Create the PostgreSQL schema")
    subparsers.add_parser("status", help="Show provider, store and cache status")

    return parser


def _emit(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def run(args: argparse.Namespace, config: AppConfig) -> None:
    runtime = await build_runtime(config, initialize_schema=args.command == "init-db")
    async with runtime:
        pipeline = runtime.pipeline

        if args.command == "index":
            result = await pipeline.index_website(
                args.url,
                CrawlBudget(max_depth=args.max_depth, max_pages=args.max_pages),
                ScopeFilters(include_paths=args.include, exclude_paths=args.exclude)
            )
            _emit(result.model_dump())

        elif args.command == "query":
            defaults = pipeline.default_options()
            options = QueryOptions(
                top_k=args.top_k if args.top_k is not None else defaults.top_k,
                similarity_threshold=(args.threshold if args.threshold is not None
                                      else defaults.similarity_threshold),
                include_metadata=not args.no_metadata
            )
            result = await pipeline.query(args.text, options)
            if args.context_only:
                print(result.context)
            else:
                _emit(result.model_dump(mode="json"))

        elif args.command == "count":
            _emit({'documents': await pipeline.document_count()})

        elif args.command == "delete":
            _emit({'id': args.document_id, 'deleted': await pipeline.delete_document(args.document_id)})

        elif args.command == "init-db":
            _emit({'initialized': True, 'dimensions': runtime.store.dimensions})

        elif args.command == "status":
            _emit(pipeline.get_status())


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = AppConfig.from_env()
    except ValueError as e:
        # Includes pydantic ValidationError
        setup_logging(level=args.log_level or "INFO", log_file=args.log_file)
        logger.error(f"Invalid configuration: {e}")
        return 1

    setup_logging(
        level=args.log_level or config.log_level,
        log_file=args.log_file,
        use_json=config.log_json
    )

    try:
        asyncio.run(run(args, config))
    except RagError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from pydantic import ValidationError

from app.core.logging import configure_logging, get_logger
from app.core.request_id import with_run_id
from app.models.events import ExtractRequest, PipelineRequest
from services import db_service
from services.cache_service import build_cache_service
from services.event_pipeline_service import EventPipeline
from services.extraction_pipeline_service import ExtractionPipeline

configure_logging(service_name="worker")
logger = get_logger().bind(worker="event_pipeline_bot")

DEFAULT_NUM = 10


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="EventPipelineBot: search, extract, dedupe and rank events; prints JSON to stdout."
    )
    parser.add_argument("--query", default="", help="Free-text search root (default: configured base query).")
    parser.add_argument("--country", default="", help="ISO country code, e.g. de, fr, gb.")
    parser.add_argument("--from", dest="date_from", default=None, help="Window start, YYYY-MM-DD.")
    parser.add_argument("--to", dest="date_to", default=None, help="Window end, YYYY-MM-DD.")
    parser.add_argument("--num", type=int, default=DEFAULT_NUM, help="Search results to request (1-50).")
    parser.add_argument(
        "--url",
        dest="urls",
        action="append",
        default=None,
        help="Skip search and extract this URL (repeatable).",
    )
    parser.add_argument("--locale", default=None, help="Locale hint for extraction, e.g. DE.")
    return parser.parse_args(argv)


async def run_pipeline(args: argparse.Namespace) -> int:
    cache = build_cache_service()
    try:
        if args.urls:
            request = ExtractRequest(urls=args.urls, locale=args.locale)
            async with ExtractionPipeline(cache) as extraction:
                response = await extraction.extract_ranked(request.urls, locale=request.locale)
        else:
            request = PipelineRequest(
                query=args.query,
                country=args.country,
                date_from=args.date_from,
                date_to=args.date_to,
                result_count=max(1, min(50, args.num)),
            )
            async with EventPipeline(cache) as pipeline:
                response = await pipeline.run(request)
    except ValidationError as exc:
        logger.error("event_pipeline_bad_arguments", error=str(exc))
        return 2
    finally:
        await db_service.close_pool()

    sys.stdout.write(response.model_dump_json(indent=2) + "\n")
    logger.info("event_pipeline_bot_complete", events=len(response.events), cache=cache.stats())
    return 0


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    with with_run_id():
        return await run_pipeline(args)


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()

"""Command-line entry point: extract offers for one or many product URLs."""

import argparse
import json
import sys
from typing import List, Optional

from dotenv import load_dotenv


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="offer-scraper",
        description="Extract product name, image and sale prices from retail product pages.",
    )
    parser.add_argument("urls", nargs="+", help="Product page URLs, processed in order.")
    parser.add_argument(
        "--strategy",
        action="append",
        dest="strategies",
        help="Strategy name (direct, browser, proxy). Repeat to chain with fallback.",
    )
    parser.add_argument(
        "--diagnostics",
        action="store_true",
        help="Attach extraction diagnostics to every result.",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Environment file with API keys (default: .env).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv(args.env_file)

    # Settings are read at import time, so import after the env file is loaded.
    from offer_scraper.configs import settings as config
    from offer_scraper.llm.openai_llm import OpenAILLM
    from offer_scraper.logger_config import get_logger
    from offer_scraper.services.offer_extraction import extract_batch

    logger = get_logger("offer_scraper.cli")

    llm = None
    if config.OPENAI_API_KEY:
        llm = OpenAILLM(
            model=config.OPENAI_MODEL,
            api_key=config.OPENAI_API_KEY,
            base_url=config.OPENAI_BASE_URL,
            timeout=config.LLM_TIMEOUT_SECONDS,
        )
    else:
        logger.warning("OPENAI_API_KEY not set; model-driven extraction is disabled.")

    try:
        result = extract_batch(
            args.urls,
            llm=llm,
            enable_diagnostics=args.diagnostics,
            logger=logger,
            strategies=args.strategies or config.DEFAULT_STRATEGIES,
        )
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    print(json.dumps(result.to_dict(), indent=2, default=str))
    print(result.render_summary(), file=sys.stderr)
    return 0 if not result.failures else 1


if __name__ == "__main__":
    sys.exit(main())

"""
Command-line entry point: perform one page load and print the result.

    python -m src.cli --config config.yaml [--json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional, Sequence

from src.config import load_config
from src.page import Page
from src.widgets import load_page, open_site

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    log_level = os.environ.get("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def format_page(page: Page) -> str:
    lines = []
    for name, slot in page.snapshot().items():
        line = f"{name:<32} {slot['state']:<8}"
        if slot["content"] is not None:
            content = slot["content"]
            if isinstance(content, list):
                line += f" {len(content)} item(s)"
            else:
                line += f" {json.dumps(content)}"
        if slot["message"]:
            line += f"  ({slot['message']})"
        lines.append(line)
    return "\n".join(lines)


async def run(config_path: Optional[str], as_json: bool) -> int:
    config = load_config(config_path)
    logger.info(
        "Loaded config: org=%s, %d web apps, cache_ttl_ms=%d",
        config.github_org,
        len(config.web_apps),
        config.cache_ttl_ms,
    )
    async with open_site(config) as ctx:
        page = await load_page(ctx)

    if as_json:
        print(json.dumps(page.snapshot(), indent=2))
    else:
        print(format_page(page))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Hydrate the site widgets from their upstream APIs."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $CONFIG_PATH or ./config.yaml)",
    )
    parser.add_argument(
        "--json", action="store_true", help="Print rendered slots as JSON"
    )
    args = parser.parse_args(argv)

    configure_logging()
    try:
        return asyncio.run(run(args.config, args.json))
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())

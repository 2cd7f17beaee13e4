"""
Drop and recreate the schema on every configured backend.

Reads DATABASE_URLS (falling back to DATABASE_URL). Destroys all data.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storage_router.config import get_settings
from storage_router.errors import ConnectError
from storage_router.handles import SqlAlchemyHandleFactory, mask_url
from storage_router.schema import create_schema, reset_schema
from storage_router.state import BackendDescriptor

logger = logging.getLogger(__name__)


async def reset_all(urls: list[str], *, keep_data: bool = False) -> int:
    """Provision every backend. Returns the number of failures."""
    factory = SqlAlchemyHandleFactory()
    failed = 0
    for index, url in enumerate(urls):
        logger.info("[%d/%d] Provisioning %s", index + 1, len(urls), mask_url(url))
        try:
            handle = await factory.open(BackendDescriptor(index=index, connection_url=url))
        except ConnectError as exc:
            logger.error("DB #%d failed: %s", index, exc)
            failed += 1
            continue
        try:
            if keep_data:
                await create_schema(handle)
            else:
                await reset_schema(handle)
            logger.info("DB #%d done", index)
        except Exception:
            logger.exception("DB #%d failed", index)
            failed += 1
        finally:
            await handle.close()
    return failed


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset schema on all backends")
    parser.add_argument(
        "--keep-data",
        action="store_true",
        help="Only create missing tables instead of dropping everything",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    settings = get_settings()
    urls = settings.backend_urls()
    if not urls and settings.database_url:
        urls = [settings.database_url]
    if not urls:
        logger.error("No DATABASE_URLS or DATABASE_URL configured")
        return 1

    failed = asyncio.run(reset_all(urls, keep_data=args.keep_data))
    logger.info("%d/%d databases provisioned", len(urls) - failed, len(urls))
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())

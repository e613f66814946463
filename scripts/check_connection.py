"""
Checks connectivity to the configured Supabase project.

Probes the standard client, the administrative client and session retrieval,
then exits non-zero if any check failed.
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

from backend.config import ConfigurationError, get_settings
from backend.supabase_client import BackendClient, InMemoryBackend, SupabaseBackend

logger = logging.getLogger(__name__)


async def run_checks(backend: BackendClient, per_page: int = 1) -> bool:
    ok = True

    logger.info("Testing Supabase connection...")
    if not await backend.test_connection():
        ok = False

    logger.info("Testing admin client...")
    try:
        users = await backend.list_users(page=1, per_page=per_page)
        logger.info("Admin client connected, found %d user(s)", len(users))
    except Exception as exc:
        logger.error("Admin client failed: %s", exc)
        ok = False

    logger.info("Testing regular client...")
    try:
        session = await backend.get_session()
        logger.info(
            "Regular client connected, current session: %s",
            "active" if session else "none",
        )
    except Exception as exc:
        logger.error("Regular client failed: %s", exc)
        ok = False

    return ok


async def _run(in_memory: bool, per_page: int) -> bool:
    if in_memory:
        backend: BackendClient = InMemoryBackend()
    else:
        backend = await SupabaseBackend.create(get_settings())
    return await run_checks(backend, per_page=per_page)


def main() -> int:
    parser = argparse.ArgumentParser(description="Supabase connection check")
    parser.add_argument(
        "--per-page",
        type=int,
        default=1,
        help="How many users the admin listing should request",
    )
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="Run the checks against the in-memory backend",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    try:
        ok = asyncio.run(_run(args.in_memory, args.per_page))
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2
    logger.info("Connection test complete")
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())

"""
Delete old webhook logs.

Usage:
    python scripts/cleanup_webhook_logs.py
    python scripts/cleanup_webhook_logs.py --days 7 --status failed
    python scripts/cleanup_webhook_logs.py --provider stripe --dry-run
"""
import argparse
import asyncio
import logging

from hookwarden.config import get_settings
from hookwarden.database import create_engine_from_settings, create_session_factory
from hookwarden.services.log_retention import cleanup_webhook_logs

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def main(days: int | None, status: str | None, provider: str | None, dry_run: bool) -> int:
    settings = get_settings()
    engine = create_engine_from_settings(settings)
    try:
        result = await cleanup_webhook_logs(
            create_session_factory(engine),
            days=days if days is not None else settings.log_retention_days,
            status=status,
            provider=provider,
            dry_run=dry_run,
        )
    except ValueError as e:
        logger.error("Cleanup aborted: %s", str(e))
        return 1
    finally:
        await engine.dispose()

    if not result.matched:
        logger.info("No webhook logs to delete.")
        return 0

    if result.dry_run:
        logger.info("DRY RUN: would delete %d webhook logs older than %s", result.matched, result.cutoff.date())
        for (prov, stat), count in sorted(result.breakdown.items()):
            logger.info("  %-10s %-8s %d", prov, stat, count)
        return 0

    logger.info("Deleted %d webhook logs older than %s", result.deleted, result.cutoff.date())
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Delete old webhook logs")
    parser.add_argument("--days", type=int, default=None, help="Delete logs older than N days")
    parser.add_argument("--status", choices=["success", "failed"], default=None)
    parser.add_argument("--provider", default=None, help="Only delete logs for this provider")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be deleted")
    args = parser.parse_args()

    raise SystemExit(asyncio.run(main(args.days, args.status, args.provider, args.dry_run)))

"""
Backfill lesson_reports from the composite text stored on bookings.

Usage:
    python -m tutorbook.commands.migrate_reports

Safe to run repeatedly: bookings that already have a report row are skipped.
"""

import asyncio

from tutorbook.core.logging import get_logger, setup_logging
from tutorbook.db.session import SessionLocal, engine
from tutorbook.services.report_lifecycle import migrate_legacy_reports


async def run() -> int:
    async with SessionLocal() as session:
        return await migrate_legacy_reports(session)


async def _main() -> None:
    try:
        created = await run()
    finally:
        await engine.dispose()
    get_logger(__name__).info("migrate_reports_finished", created=created)


def main() -> None:
    setup_logging()
    asyncio.run(_main())


if __name__ == "__main__":
    main()

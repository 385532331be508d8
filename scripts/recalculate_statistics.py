#!/usr/bin/env python3
"""Recompute class statistics and positions for every cohort of a school.

Usage: python scripts/recalculate_statistics.py <school_id> [<school_id> ...]

Reads DATABASE_URL (and REDIS_URL, if set) the same way the API does.
"""
import asyncio
import sys
from uuid import UUID

from school_results.core.cache import CacheManager
from school_results.core.config import get_settings
from school_results.core.database import Database
from school_results.core.exceptions import ResultsServiceError
from school_results.core.logging import setup_logging
from school_results.services.statistics_service import StatisticsService


async def recalculate_school(database: Database, cache: CacheManager, school_id: UUID, ttl: int) -> int:
    failures = 0
    async with database.session() as session:
        service = StatisticsService(session, cache, ttl)
        cohorts = await service.list_cohorts(school_id)
        print(f"📚 School {school_id}: {len(cohorts)} cohorts")

        for cohort in cohorts:
            try:
                statistics, ranked = await service.recalculate_all(cohort)
            except ResultsServiceError as e:
                failures += 1
                print(f"   ❌ {cohort.subject_name} / {cohort.class_name} / {cohort.session} / {cohort.term}: {e.message}")
                continue
            average = statistics["average_score"] if statistics else None
            print(
                f"   ✅ {cohort.subject_name} / {cohort.class_name} / {cohort.session} / {cohort.term}: "
                f"{ranked} ranked, average {average}"
            )
    return failures


async def main(school_ids):
    settings = get_settings()
    setup_logging(settings)

    database = Database.from_settings(settings)
    cache = CacheManager(settings.redis_url)
    await cache.connect()
    try:
        failures = 0
        for school_id in school_ids:
            failures += await recalculate_school(database, cache, school_id, settings.statistics_cache_ttl)
    finally:
        await cache.close()
        await database.dispose()

    print("=" * 50)
    print(f"Done with {failures} failures")
    return 1 if failures else 0


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    try:
        ids = [UUID(arg) for arg in sys.argv[1:]]
    except ValueError as e:
        print(f"❌ Invalid school id: {e}")
        sys.exit(2)
    sys.exit(asyncio.run(main(ids)))

"""CLI entry -- python -m wisdomos.core <command>

Commands:
  rollup-sweep [month|quarter]  roll up fulfilment scores for every user
  integrity-sweep               detect broken commitments, recompute scores

Both submit the scheduled jobs and run the orchestrator until idle, so they
fit a cron line.
"""

import asyncio
import sys

from .config import get_db_path
from .logging_config import setup_logging
from .models import PeriodType

USAGE = """usage: python -m wisdomos.core <command>
commands:
  rollup-sweep [month|quarter]  roll up fulfilment scores for every user
  integrity-sweep               detect broken commitments, recompute scores"""


def main() -> None:
    """CLI main entry"""
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)

    setup_logging()
    command = sys.argv[1]

    if command == "rollup-sweep":
        period = sys.argv[2] if len(sys.argv) > 2 else None
        try:
            period_type = PeriodType(period) if period else None
        except ValueError:
            print(f"unknown period: {period} (month or quarter)")
            sys.exit(1)
        asyncio.run(rollup_sweep(period_type))
    elif command == "integrity-sweep":
        asyncio.run(integrity_sweep())
    else:
        print(f"unknown command: {command}")
        print(USAGE)
        sys.exit(1)


async def rollup_sweep(period_type: PeriodType | None) -> None:
    from wisdomos.orchestration import build_system

    from .store import create_store_group

    db_path = get_db_path()
    print(f"database: {db_path}")
    store_group = await create_store_group(db_path)
    try:
        system = build_system(store_group)
        jobs = await system.run_scheduled_rollup(period_type)
        summary = await system.orchestrator.run_until_idle()
        print(
            f"rollup jobs: {len(jobs)}, completed: {summary.completed}, "
            f"failed: {summary.failed}, retried: {summary.retried}"
        )
    finally:
        await store_group.close()


async def integrity_sweep() -> None:
    from wisdomos.orchestration import build_system

    from .store import create_store_group

    db_path = get_db_path()
    print(f"database: {db_path}")
    store_group = await create_store_group(db_path)
    try:
        system = build_system(store_group)
        await system.run_scheduled_integrity_sweep()
        summary = await system.orchestrator.run_until_idle()
        print(f"completed: {summary.completed}, failed: {summary.failed}")
    finally:
        await store_group.close()


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Weekly job: send parent WhatsApp reports and snapshot rankings.

Usage:
    python scripts/send_weekly_reports.py [--student-id ID --test-mode] [--skip-rankings]

Reads settings (DATABASE_PATH, TWILIO_*, JWT_SECRET, ...) from the environment / .env.

This script:
1. Applies pending migrations
2. Compiles and sends every student's weekly report, one at a time
3. Stores this week's school/district rankings, achievements and rank notifications
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from eduimprove.db.database import connect, init_db  # noqa: E402
from eduimprove.services.ranking import snapshot_weekly_rankings  # noqa: E402
from eduimprove.services.weekly_report import send_weekly_reports  # noqa: E402
from eduimprove.services.whatsapp import TwilioWhatsApp  # noqa: E402

logger = logging.getLogger("send_weekly_reports")


async def run(student_id, test_mode: bool, skip_rankings: bool) -> dict:
    await init_db()
    db = await connect()
    try:
        summary = await send_weekly_reports(db, TwilioWhatsApp(), student_id=student_id, test_mode=test_mode)
        if not skip_rankings and not test_mode:
            summary["rankings"] = await snapshot_weekly_rankings(db)
    finally:
        await db.close()
    return summary


def main():
    parser = argparse.ArgumentParser(
        description="Send weekly parent reports and snapshot rankings"
    )
    parser.add_argument("--student-id", type=int, default=None, help="Only this student (requires --test-mode)")
    parser.add_argument("--test-mode", action="store_true", help="Send to a single student, skip rankings")
    parser.add_argument("--skip-rankings", action="store_true", help="Do not store the weekly ranking snapshot")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s [%(name)s] %(message)s")

    if args.test_mode and args.student_id is None:
        print("ERROR: --test-mode needs --student-id")
        sys.exit(1)

    summary = asyncio.run(run(args.student_id, args.test_mode, args.skip_rankings))
    logger.info(summary["message"])
    print(json.dumps(summary, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()

# -*- coding: utf-8 -*-
"""
Builds the invoices of a month from its billable lessons.

Meant to be run by cron early each month. By default it bills the PREVIOUS
month; --month and --year force a specific period. Re-running a period
rewrites its invoices with the current lessons.
"""

import argparse
import logging
import sys
from datetime import date

from dateutil.relativedelta import relativedelta

from lessonbook.auth import Caller
from lessonbook.config import config
from lessonbook.database import SessionLocal
from lessonbook.errors import LessonbookError
from lessonbook.models.user import Role
from lessonbook.services.billing import generate_monthly_invoices

# Batch jobs run with admin rights; user id 0 marks the system caller in logs
SYSTEM_CALLER = Caller(user_id=0, role=Role.ADMIN)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Monthly invoice generator')
    parser.add_argument('--month', type=int, help='Billing month (1-12)')
    parser.add_argument('--year', type=int, help='Billing year (e.g. 2025)')
    args = parser.parse_args(argv)
    if (args.month is None) != (args.year is None):
        parser.error('--month and --year must be given together')
    return args


def target_period(month=None, year=None, today=None):
    if month and year:
        return month, year
    previous = (today or date.today()) - relativedelta(months=1)
    return previous.month, previous.year


def main(argv=None):
    logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s - %(levelname)s - %(message)s')
    args = parse_args(argv)
    month, year = target_period(args.month, args.year)
    logging.info(f"Generating invoices for {month:02d}/{year}")

    db = SessionLocal()
    try:
        result = generate_monthly_invoices(db, SYSTEM_CALLER, month, year)
    except LessonbookError as e:
        logging.error(f"Invoice generation failed: {e.detail}")
        return 1
    finally:
        db.close()

    logging.info(f"SUCCESS: {result.generated} invoices generated, {result.failed} failed.")
    return 0 if result.failed == 0 else 2


if __name__ == "__main__":
    sys.exit(main())

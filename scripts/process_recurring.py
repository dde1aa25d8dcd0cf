"""Generate the transactions of all due recurring series.

Meant to run once a day from cron:

    0 2 * * * cd /srv/finance-backend && python scripts/process_recurring.py
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Ensure project backend root is on sys.path
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from sqlmodel import Session

from app.config import settings
from app.database import engine, init_db
from app.services.recurring import process_due_recurring_transactions

logger = logging.getLogger("process_recurring")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="process as if today were this ISO date (default: today)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()

    with Session(engine) as session:
        processed = process_due_recurring_transactions(session, today=args.date)

    logger.info("Done: %d transactions generated", len(processed))
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Periodic balance job: anniversary reset of the annual pool, then the monthly
reward-accrual check, for every active employee.

Each employee is processed in its own transaction, so one failure does not
block the others. Safe to run more than once a month.

    python -m scripts.run_accruals [--date YYYY-MM-DD]
"""
import argparse
import logging
import sys
from datetime import date

from app.core.logging import setup_logging
from app.database import SessionLocal, init_db
from app.models.user import User
from app.services.vacation_service import VacationService

logger = logging.getLogger("scripts.run_accruals")


def run(today: date) -> int:
    failures = 0
    db = SessionLocal()
    try:
        employee_ids = [
            row[0] for row in db.query(User.id).filter(User.is_active.is_(True)).order_by(User.id).all()
        ]
        service = VacationService(db, clock=lambda: today)
        for employee_id in employee_ids:
            try:
                outcome = service.run_periodic_checks(employee_id, today)
            except Exception:
                failures += 1
                logger.exception(f"Periodic checks failed for employee {employee_id}")
                continue
            reward = outcome["reward"]
            logger.info(
                f"Employee {employee_id}: annual reset={'yes' if outcome['annual_reset'] else 'no'}, "
                f"reward +{reward.days_awarded} ({reward.message})"
            )
        logger.info(f"Processed {len(employee_ids)} employee(s), {failures} failure(s)")
    finally:
        db.close()
    return failures


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run annual resets and reward accruals")
    parser.add_argument("--date", type=date.fromisoformat, default=date.today(),
                        help="Evaluate as of this date (default: today)")
    args = parser.parse_args(argv)

    setup_logging()
    init_db()
    return 1 if run(args.date) else 0


if __name__ == "__main__":
    sys.exit(main())

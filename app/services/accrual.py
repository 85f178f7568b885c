"""
Periodic balance policies: monthly reward accrual and anniversary reset of the
annual pool.

Both are idempotent for their period. A check first claims the period with a
conditional UPDATE of the employee's last_reward_check / last_annual_reset, so
a second run in the same month (or after the same anniversary) credits nothing,
even when two runs race.
"""
import calendar
from datetime import date
from typing import List, NamedTuple, Optional

from sqlalchemy import func, or_, select, update

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.models.leave_ledger import LeavePool
from app.models.user import User
from app.models.vacation_request import RESERVED_STATUSES, VacationRequest
from app.services.balance_ledger import BalanceLedger
from app.services.base import BaseService


def first_of_month(day: date) -> date:
    return day.replace(day=1)


def last_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def add_months(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def anniversary_in_year(anchor: date, year: int) -> date:
    # Feb 29 anchors fall back to Feb 28 in common years
    last_day = calendar.monthrange(year, anchor.month)[1]
    return date(year, anchor.month, min(anchor.day, last_day))


def latest_anniversary(anchor: date, today: date) -> Optional[date]:
    """Most recent anniversary of anchor on or before today (the anchor itself counts)."""
    if anchor > today:
        return None
    candidate = anniversary_in_year(anchor, today.year)
    if candidate > today:
        candidate = anniversary_in_year(anchor, today.year - 1)
    return max(candidate, anchor)


def next_anniversary(anchor: date, today: date) -> date:
    """First anniversary of anchor strictly after today."""
    candidate = anniversary_in_year(anchor, today.year)
    if candidate <= today:
        candidate = anniversary_in_year(anchor, today.year + 1)
    return candidate


class RewardCheckResult(NamedTuple):
    awarded: bool
    days_awarded: int
    months_evaluated: List[date]
    message: str
    reward_balance: int


class RewardAccrualPolicy(BaseService):
    """
    Grants reward days for each completed calendar month in which the employee
    consumed no annual leave.

    The months evaluated by a check are every completed month from the month of
    the previous check up to last month. With no previous check only last month
    is evaluated.
    """

    def __init__(self, db, ledger: Optional[BalanceLedger] = None):
        super().__init__(db)
        self.ledger = ledger or BalanceLedger(db)

    def check(self, employee_id: int, today: Optional[date] = None) -> RewardCheckResult:
        today = today or date.today()
        employee = self.db.get(User, employee_id)
        if employee is None:
            raise NotFoundError(f"Employee {employee_id} not found")

        current_month = first_of_month(today)
        previous_check = employee.last_reward_check
        reward_balance = employee.reward_vacation_balance

        # Claim this month's check; losing the claim means it already ran.
        claimed = self.db.execute(
            update(User)
            .where(
                User.id == employee_id,
                or_(User.last_reward_check.is_(None), User.last_reward_check < current_month),
            )
            .values(last_reward_check=today)
        )
        if claimed.rowcount != 1:
            return RewardCheckResult(
                awarded=False,
                days_awarded=0,
                months_evaluated=[],
                message="Reward eligibility has already been checked this month.",
                reward_balance=reward_balance,
            )

        months = self._months_to_evaluate(previous_check, employee.hire_date, current_month)
        eligible = [month for month in months if self.annual_days_used(employee_id, month) == 0]
        days = len(eligible) * settings.leave.reward_days_per_month

        if days:
            reward_balance = self.ledger.accrue_reward(
                employee_id, days,
                note="reward for " + ", ".join(m.strftime("%Y-%m") for m in eligible)
            )
            message = f"Awarded {days} reward day(s) for {len(eligible)} month(s) without annual leave."
        elif months:
            message = "No reward earned: annual leave was used in every month evaluated."
        else:
            message = "No completed month to evaluate yet."

        self.log_info(f"Reward check for employee {employee_id}: {message}")
        return RewardCheckResult(
            awarded=days > 0,
            days_awarded=days,
            months_evaluated=months,
            message=message,
            reward_balance=reward_balance,
        )

    def annual_days_used(self, employee_id: int, month: date) -> int:
        """Annual-pool working days held by requests overlapping the given month."""
        start, end = first_of_month(month), last_of_month(month)
        used = self.db.execute(
            select(func.coalesce(func.sum(VacationRequest.working_days), 0)).where(
                VacationRequest.employee_id == employee_id,
                VacationRequest.is_reward_vacation.is_(False),
                VacationRequest.status.in_([s.value for s in RESERVED_STATUSES]),
                VacationRequest.start_date <= end,
                VacationRequest.end_date >= start,
            )
        ).scalar_one()
        return int(used)

    @staticmethod
    def _months_to_evaluate(
        previous_check: Optional[date],
        hire_date: Optional[date],
        current_month: date
    ) -> List[date]:
        if previous_check is None:
            start = add_months(current_month, -1)
        else:
            start = first_of_month(previous_check)
        if hire_date is not None:
            # The month of hire is never a full month of service
            start = max(start, add_months(first_of_month(hire_date), 1))
        months = []
        month = start
        while month < current_month:
            months.append(month)
            month = add_months(month, 1)
        return months


class AnnualResetPolicy(BaseService):
    """Resets the annual pool to the policy default on each service anniversary."""

    def __init__(self, db, ledger: Optional[BalanceLedger] = None):
        super().__init__(db)
        self.ledger = ledger or BalanceLedger(db)

    def apply(self, employee_id: int, today: Optional[date] = None) -> bool:
        today = today or date.today()
        employee = self.db.get(User, employee_id)
        if employee is None:
            raise NotFoundError(f"Employee {employee_id} not found")

        anchor = employee.hire_date or employee.last_annual_reset
        if anchor is None:
            return False
        anniversary = latest_anniversary(anchor, today)
        if anniversary is None:
            return False
        if employee.last_annual_reset is not None and employee.last_annual_reset >= anniversary:
            return False

        # Another run may have claimed this anniversary since the read above
        return self.ledger.reset_annual(employee_id, as_of=anniversary) is not None

    @staticmethod
    def next_reset(employee: User, today: date) -> Optional[date]:
        anchor = employee.hire_date or employee.last_annual_reset
        if anchor is None:
            return None
        return next_anniversary(anchor, today)

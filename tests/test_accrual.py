import pytest
from datetime import date

from sqlalchemy.orm.attributes import set_committed_value

from app.models.leave_ledger import LeavePool
from app.models.user import User, UserRole
from app.models.vacation_request import VacationRequest, VacationStatus
from app.services.accrual import (
    AnnualResetPolicy,
    RewardAccrualPolicy,
    add_months,
    anniversary_in_year,
    latest_anniversary,
    next_anniversary,
)


def _held(db_session, employee, start, end, working_days, status=VacationStatus.APPROVED, reward=False):
    vacation = VacationRequest(
        employee_id=employee.id,
        department_id=employee.department_id,
        vacation_type="annual",
        start_date=start,
        end_date=end,
        total_days=(end - start).days + 1,
        working_days=working_days,
        is_reward_vacation=reward,
        reason="trip",
        status=status.value,
        balance_before=21,
    )
    db_session.add(vacation)
    db_session.commit()
    return vacation


def test_add_months_clamps_day():
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2025, 1, 1), -1) == date(2024, 12, 1)
    assert add_months(date(2024, 11, 1), 3) == date(2025, 2, 1)


def test_leap_day_anniversary_falls_back():
    assert anniversary_in_year(date(2020, 2, 29), 2025) == date(2025, 2, 28)
    assert anniversary_in_year(date(2020, 2, 29), 2028) == date(2028, 2, 29)


def test_anniversary_helpers():
    hired = date(2020, 3, 15)
    assert latest_anniversary(hired, date(2025, 6, 1)) == date(2025, 3, 15)
    assert latest_anniversary(hired, date(2025, 3, 1)) == date(2024, 3, 15)
    assert latest_anniversary(hired, date(2020, 1, 1)) is None
    assert next_anniversary(hired, date(2025, 3, 15)) == date(2026, 3, 15)


class TestRewardAccrual:

    def test_first_check_rewards_last_month(self, db_session, instructor):
        result = RewardAccrualPolicy(db_session).check(instructor.id, date(2025, 6, 15))

        assert result.awarded is True
        assert result.days_awarded == 1
        assert result.months_evaluated == [date(2025, 5, 1)]
        assert result.reward_balance == 1

    def test_second_check_in_same_month_is_noop(self, db_session, instructor):
        policy = RewardAccrualPolicy(db_session)
        policy.check(instructor.id, date(2025, 6, 15))
        result = policy.check(instructor.id, date(2025, 6, 28))

        assert result.awarded is False
        assert result.days_awarded == 0
        assert "already" in result.message
        assert db_session.get(User, instructor.id).reward_vacation_balance == 1

    def test_following_month_evaluates_only_new_months(self, db_session, instructor):
        policy = RewardAccrualPolicy(db_session)
        policy.check(instructor.id, date(2025, 6, 15))
        result = policy.check(instructor.id, date(2025, 7, 3))

        assert result.months_evaluated == [date(2025, 6, 1)]
        assert result.reward_balance == 2

    def test_annual_usage_disqualifies_month(self, db_session, instructor):
        _held(db_session, instructor, date(2025, 5, 4), date(2025, 5, 8), 5)
        result = RewardAccrualPolicy(db_session).check(instructor.id, date(2025, 6, 10))

        assert result.awarded is False
        assert result.months_evaluated == [date(2025, 5, 1)]
        assert db_session.get(User, instructor.id).reward_vacation_balance == 0

    def test_pending_request_also_counts_as_usage(self, db_session, instructor):
        _held(db_session, instructor, date(2025, 5, 4), date(2025, 5, 5), 2, status=VacationStatus.PENDING)
        result = RewardAccrualPolicy(db_session).check(instructor.id, date(2025, 6, 10))
        assert result.awarded is False

    @pytest.mark.parametrize("status", [VacationStatus.REJECTED, VacationStatus.CANCELLED])
    def test_released_requests_do_not_count(self, db_session, instructor, status):
        _held(db_session, instructor, date(2025, 5, 4), date(2025, 5, 8), 5, status=status)
        result = RewardAccrualPolicy(db_session).check(instructor.id, date(2025, 6, 10))
        assert result.days_awarded == 1

    def test_reward_vacation_does_not_count(self, db_session, instructor):
        _held(db_session, instructor, date(2025, 5, 4), date(2025, 5, 8), 5, reward=True)
        result = RewardAccrualPolicy(db_session).check(instructor.id, date(2025, 6, 10))
        assert result.days_awarded == 1

    def test_catch_up_over_several_months(self, db_session, instructor):
        instructor.last_reward_check = date(2025, 3, 10)
        db_session.commit()
        _held(db_session, instructor, date(2025, 4, 27), date(2025, 5, 1), 5)

        result = RewardAccrualPolicy(db_session).check(instructor.id, date(2025, 6, 5))

        # April and May both overlap the request; only March qualifies
        assert result.months_evaluated == [date(2025, 3, 1), date(2025, 4, 1), date(2025, 5, 1)]
        assert result.days_awarded == 1

    def test_hire_month_is_never_rewarded(self, db_session, make_user, cst):
        employee = make_user(UserRole.INSTRUCTOR, cst, hire_date=date(2025, 5, 10))
        policy = RewardAccrualPolicy(db_session)
        result = policy.check(employee.id, date(2025, 6, 2))

        assert result.months_evaluated == []
        assert result.awarded is False
        # The month is still claimed
        assert "already" in policy.check(employee.id, date(2025, 6, 20)).message


class TestAnnualReset:

    def test_reset_on_anniversary(self, db_session, make_user, cst):
        employee = make_user(UserRole.INSTRUCTOR, cst, annual=4, hire_date=date(2020, 3, 15))
        policy = AnnualResetPolicy(db_session)

        assert policy.apply(employee.id, date(2025, 6, 1)) is True
        db_session.expire_all()
        employee = db_session.get(User, employee.id)
        assert employee.annual_vacation_balance == 21
        assert employee.last_annual_reset == date(2025, 3, 15)

    def test_reset_once_per_anniversary(self, db_session, make_user, cst):
        employee = make_user(UserRole.INSTRUCTOR, cst, annual=4, hire_date=date(2020, 3, 15))
        policy = AnnualResetPolicy(db_session)
        policy.apply(employee.id, date(2025, 6, 1))

        employee.annual_vacation_balance = 10
        db_session.commit()
        assert policy.apply(employee.id, date(2025, 12, 1)) is False
        assert db_session.get(User, employee.id).annual_vacation_balance == 10

        assert policy.apply(employee.id, date(2026, 3, 15)) is True

    def test_run_with_stale_read_does_not_reset_again(self, db_session, make_user, cst):
        employee = make_user(UserRole.INSTRUCTOR, cst, hire_date=date(2020, 3, 15))
        policy = AnnualResetPolicy(db_session)
        assert policy.apply(employee.id, date(2025, 6, 1)) is True
        db_session.commit()
        policy.ledger.reserve(employee.id, 5, LeavePool.ANNUAL)
        db_session.commit()

        # A concurrent run that read the employee before the first reset
        db_session.refresh(employee)
        set_committed_value(employee, "last_annual_reset", None)

        assert policy.apply(employee.id, date(2025, 6, 1)) is False
        assert policy.ledger.get_balance(employee.id, LeavePool.ANNUAL) == 16

    def test_no_anchor_means_no_reset(self, db_session, instructor):
        assert AnnualResetPolicy(db_session).apply(instructor.id, date(2025, 6, 1)) is False

    def test_next_reset(self, make_user, cst):
        employee = make_user(UserRole.INSTRUCTOR, cst, hire_date=date(2020, 3, 15))
        assert AnnualResetPolicy.next_reset(employee, date(2025, 6, 1)) == date(2026, 3, 15)

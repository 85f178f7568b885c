"""
Balance Ledger

The single authority over an employee's two leave pools (annual, reward).

Every mutation is one atomic conditional UPDATE on the employee row, so two
concurrent reservations can never both pass a balance check against a stale
read, paired with an append-only LeaveLedgerEntry. Nothing here commits: the
calling service decides the transaction boundary.
"""
from datetime import date
from typing import Optional, Tuple

from sqlalchemy import or_, select, update

from app.core.config import settings
from app.core.exceptions import InsufficientBalanceError, NotFoundError
from app.models.leave_ledger import LeaveLedgerEntry, LeavePool, LedgerEntryType
from app.models.user import User
from app.models.vacation_request import VacationRequest
from app.services.base import BaseService

_POOL_COLUMNS = {
    LeavePool.ANNUAL: User.annual_vacation_balance,
    LeavePool.REWARD: User.reward_vacation_balance,
}


def pool_ceiling(pool: LeavePool) -> Optional[int]:
    if pool == LeavePool.ANNUAL:
        return settings.leave.annual_vacation_days
    return settings.leave.reward_ceiling


class BalanceLedger(BaseService):

    def get_balance(self, employee_id: int, pool: LeavePool) -> int:
        balance = self.db.execute(
            select(_POOL_COLUMNS[pool]).where(User.id == employee_id)
        ).scalar_one_or_none()
        if balance is None:
            raise NotFoundError(f"Employee {employee_id} not found")
        return balance

    def reserve(
        self,
        employee_id: int,
        amount: int,
        pool: LeavePool,
        vacation_id: Optional[int] = None
    ) -> LeaveLedgerEntry:
        """
        Check-and-decrement in one statement. Fails closed: on insufficient
        balance nothing is mutated and InsufficientBalanceError carries the
        required and available amounts.
        """
        if amount <= 0:
            raise ValueError("Reservation amount must be positive")
        column = _POOL_COLUMNS[pool]
        result = self.db.execute(
            update(User)
            .where(User.id == employee_id, column >= amount)
            .values({column: column - amount})
        )
        if result.rowcount != 1:
            available = self.get_balance(employee_id, pool)
            self.log_warning(
                f"Reservation refused for employee {employee_id}: {amount} {pool.value} day(s) "
                f"requested, {available} available"
            )
            raise InsufficientBalanceError(required=amount, available=available, pool=pool.value)

        balance_after = self.get_balance(employee_id, pool)
        self.log_info(f"Reserved {amount} {pool.value} day(s) for employee {employee_id} (balance {balance_after})")
        return self._record(employee_id, pool, LedgerEntryType.RESERVE, -amount, balance_after, vacation_id)

    def restore(
        self,
        employee_id: int,
        amount: int,
        pool: LeavePool,
        vacation_id: int,
        note: Optional[str] = None
    ) -> bool:
        """
        Return a request's reservation to its pool, at most once per request.

        The request's reservation_restored flag is claimed with a conditional
        UPDATE first; a second call finds it already set and is a no-op.

        Returns:
            True if this call restored the reservation, False if it already was.
        """
        claimed = self.db.execute(
            update(VacationRequest)
            .where(
                VacationRequest.id == vacation_id,
                VacationRequest.reservation_restored.is_(False),
            )
            .values(reservation_restored=True)
        )
        if claimed.rowcount != 1:
            self.log_info(f"Reservation of vacation {vacation_id} already restored; skipping")
            return False

        ceiling = self._reservation_ceiling(employee_id, vacation_id, pool)
        credited, balance_after = self._credit(employee_id, amount, pool, ceiling)
        if credited != amount:
            note = f"{note + '; ' if note else ''}clamped from {amount} to policy ceiling"
        self._record(employee_id, pool, LedgerEntryType.RESTORE, credited, balance_after, vacation_id, note)
        self.log_info(f"Restored {credited} {pool.value} day(s) to employee {employee_id} for vacation {vacation_id}")
        return True

    def adjust(
        self,
        employee_id: int,
        vacation_id: int,
        old_amount: int,
        new_amount: int,
        pool: LeavePool
    ) -> int:
        """
        Move an outstanding reservation from old_amount to new_amount. When the
        larger amount cannot be covered nothing changes and
        InsufficientBalanceError reports the full new amount against the
        balance as it would be with the old reservation returned.
        """
        delta = new_amount - old_amount
        column = _POOL_COLUMNS[pool]
        if delta == 0:
            return self.get_balance(employee_id, pool)

        if delta > 0:
            result = self.db.execute(
                update(User)
                .where(User.id == employee_id, column >= delta)
                .values({column: column - delta})
            )
            if result.rowcount != 1:
                available = self.get_balance(employee_id, pool) + old_amount
                raise InsufficientBalanceError(required=new_amount, available=available, pool=pool.value)
            balance_after = self.get_balance(employee_id, pool)
            change = -delta
        else:
            ceiling = self._reservation_ceiling(employee_id, vacation_id, pool)
            change, balance_after = self._credit(employee_id, -delta, pool, ceiling)

        self._record(
            employee_id, pool, LedgerEntryType.ADJUST, change, balance_after, vacation_id,
            note=f"reservation {old_amount} -> {new_amount}"
        )
        self.log_info(f"Adjusted vacation {vacation_id} reservation {old_amount} -> {new_amount} ({pool.value})")
        return balance_after

    def accrue_reward(self, employee_id: int, days: int, note: Optional[str] = None) -> int:
        if days <= 0:
            raise ValueError("Accrual must be positive")
        credited, balance_after = self._credit(employee_id, days, LeavePool.REWARD, pool_ceiling(LeavePool.REWARD))
        self._record(employee_id, LeavePool.REWARD, LedgerEntryType.ACCRUAL, credited, balance_after, note=note)
        self.log_info(f"Accrued {credited} reward day(s) to employee {employee_id} (balance {balance_after})")
        return balance_after

    def reset_annual(
        self,
        employee_id: int,
        new_value: Optional[int] = None,
        as_of: Optional[date] = None
    ) -> Optional[int]:
        """
        Set the annual pool to the policy default. In-flight reservations are
        not consulted.

        The reset claims as_of with a conditional UPDATE on last_annual_reset,
        so a second reset for the same (or an earlier) date changes nothing.

        Returns:
            The new balance, or None if the period was already reset.
        """
        if new_value is None:
            new_value = settings.leave.annual_vacation_days
        as_of = as_of or date.today()
        previous = self.get_balance(employee_id, LeavePool.ANNUAL)
        result = self.db.execute(
            update(User)
            .where(
                User.id == employee_id,
                or_(User.last_annual_reset.is_(None), User.last_annual_reset < as_of),
            )
            .values(annual_vacation_balance=new_value, last_annual_reset=as_of)
        )
        if result.rowcount != 1:
            self.log_info(f"Annual balance of employee {employee_id} already reset for {as_of}; skipping")
            return None
        self._record(
            employee_id, LeavePool.ANNUAL, LedgerEntryType.RESET, new_value - previous, new_value,
            note=f"annual reset from {previous}"
        )
        self.log_info(f"Annual balance of employee {employee_id} reset {previous} -> {new_value}")
        return new_value

    def _reservation_ceiling(self, employee_id: int, vacation_id: int, pool: LeavePool) -> Optional[int]:
        """
        Ceiling for days a request hands back. They may lift the pool to what
        the employee held before the request, unless an annual reset has
        replaced the pool since the reservation was taken.
        """
        ceiling = pool_ceiling(pool)
        if ceiling is None:
            return None
        balance_before = self.db.execute(
            select(VacationRequest.balance_before).where(VacationRequest.id == vacation_id)
        ).scalar_one_or_none()
        if balance_before is None or balance_before <= ceiling:
            return ceiling

        reserved_at = self.db.execute(
            select(LeaveLedgerEntry.id).where(
                LeaveLedgerEntry.vacation_id == vacation_id,
                LeaveLedgerEntry.entry_type == LedgerEntryType.RESERVE.value,
            )
        ).scalar_one_or_none()
        if reserved_at is not None:
            reset_since = self.db.execute(
                select(LeaveLedgerEntry.id).where(
                    LeaveLedgerEntry.employee_id == employee_id,
                    LeaveLedgerEntry.pool == pool.value,
                    LeaveLedgerEntry.entry_type == LedgerEntryType.RESET.value,
                    LeaveLedgerEntry.id > reserved_at,
                ).limit(1)
            ).scalar_one_or_none()
            if reset_since is not None:
                return ceiling
        return balance_before

    def _credit(self, employee_id: int, amount: int, pool: LeavePool, ceiling: Optional[int]) -> Tuple[int, int]:
        """Add up to amount to a pool without crossing ceiling. Returns (credited, balance_after)."""
        current = self.get_balance(employee_id, pool)
        credited = amount
        if ceiling is not None and current + amount > ceiling:
            credited = max(ceiling - current, 0)
            self.log_warning(
                f"Credit of {amount} {pool.value} day(s) to employee {employee_id} clamped to {credited} "
                f"by ceiling {ceiling}"
            )
        if credited:
            column = _POOL_COLUMNS[pool]
            self.db.execute(
                update(User)
                .where(User.id == employee_id)
                .values({column: column + credited})
            )
        return credited, current + credited

    def _record(
        self,
        employee_id: int,
        pool: LeavePool,
        entry_type: LedgerEntryType,
        amount: int,
        balance_after: int,
        vacation_id: Optional[int] = None,
        note: Optional[str] = None
    ) -> LeaveLedgerEntry:
        entry = LeaveLedgerEntry(
            employee_id=employee_id,
            vacation_id=vacation_id,
            pool=pool.value,
            entry_type=entry_type.value,
            amount=amount,
            balance_after=balance_after,
            note=note,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

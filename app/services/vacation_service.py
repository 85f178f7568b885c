"""
Vacation Service Layer

Orchestrates a vacation request's life: validation, working-day computation,
balance reservation, reviewer transitions, date corrections and withdrawal.

Architecture:
- Router -> VacationService (this module) -> ApprovalWorkflow / BalanceLedger / Models
- Each public mutation is one database transaction: it either commits every
  step (status change, ledger movement, audit entry) or rolls all of them back
  and re-raises the first failure.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AccessDeniedError,
    NotFoundError,
    StaleStateError,
    ValidationError,
    ZeroWorkingDaysError,
)
from app.core.permissions import Permission
from app.models.department import Department
from app.models.leave_ledger import LeavePool
from app.models.user import User
from app.models.vacation_request import (
    RESERVED_STATUSES,
    VacationRequest,
    VacationStatus,
    VacationType,
)
from app.services.accrual import (
    AnnualResetPolicy,
    RewardAccrualPolicy,
    RewardCheckResult,
    add_months,
    first_of_month,
)
from app.services.audit import AuditService, vacation_snapshot
from app.services.balance_ledger import BalanceLedger
from app.services.base import BaseService
from app.services.workflow import (
    ReviewDecision,
    ReviewStage,
    Transition,
    WorkflowAction,
    workflow as default_workflow,
)
from app.services.working_days import DayBreakdown, calculate_working_days

logger = logging.getLogger(__name__)

ENTITY_TYPE = "vacation_request"


class VacationService(BaseService):

    def __init__(self, db: Session, clock: Optional[Callable[[], date]] = None):
        super().__init__(db)
        self.clock = clock or date.today
        self.ledger = BalanceLedger(db)
        self.workflow = default_workflow
        self.audit = AuditService(db)
        self.reward_policy = RewardAccrualPolicy(db, self.ledger)
        self.reset_policy = AnnualResetPolicy(db, self.ledger)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        employee_id: int,
        department_id: int,
        vacation_type: Union[VacationType, str],
        start_date: date,
        end_date: date,
        reason: str,
        is_reward_vacation: bool = False,
        is_extension: bool = False
    ) -> VacationRequest:
        """
        Create a PENDING request and reserve its working days.

        Raises:
            ValidationError: empty reason, past start, reversed range, bad type,
                unknown/mismatched department, inactive employee
            ZeroWorkingDaysError: the range holds only weekend days
            InsufficientBalanceError: the chosen pool cannot cover the request
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required.")
        self._validate_dates(start_date, end_date)
        vacation_type = self._parse_type(vacation_type)

        employee = self._get_employee(employee_id)
        if not employee.is_active:
            raise ValidationError("Inactive employees cannot apply for vacation.")
        self._check_department(employee, department_id)

        breakdown = self._breakdown(start_date, end_date)
        pool = LeavePool.REWARD if is_reward_vacation else LeavePool.ANNUAL

        try:
            entry = self.ledger.reserve(employee_id, breakdown.working_days, pool)
            vacation = VacationRequest(
                employee_id=employee_id,
                department_id=department_id,
                vacation_type=vacation_type.value,
                start_date=start_date,
                end_date=end_date,
                total_days=breakdown.total_days,
                working_days=breakdown.working_days,
                is_reward_vacation=is_reward_vacation,
                reason=reason,
                status=VacationStatus.PENDING.value,
                chief_review_required=self.workflow.requires_chief_review(employee.role),
                is_extension=is_extension,
                balance_before=entry.balance_after + breakdown.working_days,
                reservation_restored=False,
                version=1,
            )
            self.db.add(vacation)
            self.db.flush()
            entry.vacation_id = vacation.id

            self.audit.log_action(
                action="submit_vacation",
                entity_type=ENTITY_TYPE,
                entity_id=vacation.id,
                user_id=employee.id,
                user_role=employee.role.value,
                details={"pool": pool.value, "working_days": breakdown.working_days},
                after_state=vacation_snapshot(vacation),
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(vacation)
        logger.info(
            f"Vacation {vacation.id} submitted by employee {employee_id}: "
            f"{breakdown.working_days} {pool.value} working day(s), "
            f"chief review {'required' if vacation.chief_review_required else 'skipped'}"
        )
        return vacation

    def preview(
        self,
        employee_id: int,
        start_date: date,
        end_date: date,
        is_reward_vacation: bool = False
    ) -> Dict[str, Any]:
        """Working-day breakdown and balance projection for a range. No mutation."""
        if end_date < start_date:
            raise ValidationError("End date cannot be before start date.")
        breakdown = calculate_working_days(start_date, end_date)
        pool = LeavePool.REWARD if is_reward_vacation else LeavePool.ANNUAL
        available = self.ledger.get_balance(employee_id, pool)
        return {
            "total_days": breakdown.total_days,
            "working_days": breakdown.working_days,
            "weekend_days": breakdown.weekend_days,
            "weekend_dates": breakdown.weekend_dates,
            "pool": pool.value,
            "available_balance": available,
            "remaining_balance": available - breakdown.working_days,
            "sufficient": breakdown.working_days <= available,
        }

    # ------------------------------------------------------------------
    # Reviewer actions
    # ------------------------------------------------------------------

    def review(
        self,
        request_id: int,
        reviewer: User,
        stage: Union[ReviewStage, str],
        decision: Union[ReviewDecision, str],
        remarks: Optional[str] = None
    ) -> VacationRequest:
        """
        Apply a chief or principal decision.

        Raises:
            NotFoundError, AccessDeniedError, InvalidTransitionError,
            ValidationError (rejection without remarks), StaleStateError
        """
        stage = ReviewStage(stage)
        decision = ReviewDecision(decision)
        vacation = self.get(request_id)
        action = self.workflow.action_for(stage, decision)
        self.workflow.authorize(reviewer, vacation, action)
        transition = self.workflow.resolve(vacation, action)
        remarks = self.workflow.validate_remarks(transition, remarks)

        now = datetime.now(timezone.utc)
        if stage == ReviewStage.CHIEF:
            values = {
                "reviewed_by_chief_id": reviewer.id,
                "chief_remarks": remarks,
                "chief_review_date": now,
            }
        else:
            values = {
                "reviewed_by_principal_id": reviewer.id,
                "principal_remarks": remarks,
                "principal_review_date": now,
            }
        return self._execute(vacation, transition, reviewer, values, {"remarks": remarks})

    def chief_review(self, request_id: int, reviewer: User, status: str, remarks: Optional[str] = None) -> VacationRequest:
        decision = self.workflow.decision_from_status(ReviewStage.CHIEF, status)
        return self.review(request_id, reviewer, ReviewStage.CHIEF, decision, remarks)

    def principal_review(self, request_id: int, reviewer: User, status: str, remarks: Optional[str] = None) -> VacationRequest:
        decision = self.workflow.decision_from_status(ReviewStage.PRINCIPAL, status)
        return self.review(request_id, reviewer, ReviewStage.PRINCIPAL, decision, remarks)

    def cancel(self, request_id: int, actor: User, remarks: Optional[str] = None) -> VacationRequest:
        """Withdraw a request that nobody has reviewed yet; its reservation is returned."""
        vacation = self.get(request_id)
        self.workflow.authorize(actor, vacation, WorkflowAction.CANCEL)
        transition = self.workflow.resolve(vacation, WorkflowAction.CANCEL)
        remarks = self.workflow.validate_remarks(transition, remarks)
        values = {
            "cancelled_by_id": actor.id,
            "cancellation_remarks": remarks,
            "cancelled_at": datetime.now(timezone.utc),
        }
        return self._execute(vacation, transition, actor, values, {"remarks": remarks})

    def edit_dates(
        self,
        request_id: int,
        actor: User,
        start_date: date,
        end_date: date,
        remarks: Optional[str] = None
    ) -> VacationRequest:
        """
        Correct the dates of a PENDING request. Working days are recomputed and
        the reservation moved to the new amount; if the new amount cannot be
        covered the edit fails and the original reservation stays as it was.
        """
        vacation = self.get(request_id)
        self.workflow.authorize(actor, vacation, WorkflowAction.EDIT_DATES)
        transition = self.workflow.resolve(vacation, WorkflowAction.EDIT_DATES)
        self._validate_dates(start_date, end_date)
        breakdown = self._breakdown(start_date, end_date)

        before = vacation_snapshot(vacation)
        old_amount = vacation.working_days
        try:
            balance_after = self.ledger.adjust(
                vacation.employee_id, vacation.id, old_amount, breakdown.working_days, vacation.pool
            )
            self._apply_transition(vacation, transition, {
                "start_date": start_date,
                "end_date": end_date,
                "total_days": breakdown.total_days,
                "working_days": breakdown.working_days,
                "balance_before": balance_after + breakdown.working_days,
                "dates_edited_by_id": actor.id,
                "dates_edited_at": datetime.now(timezone.utc),
            })
            self.db.refresh(vacation)
            self.audit.log_action(
                action="edit_vacation_dates",
                entity_type=ENTITY_TYPE,
                entity_id=vacation.id,
                user_id=actor.id,
                user_role=actor.role.value,
                details={
                    "remarks": remarks.strip() if remarks else None,
                    "old_working_days": old_amount,
                    "new_working_days": breakdown.working_days,
                },
                before_state=before,
                after_state=vacation_snapshot(vacation),
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(vacation)
        logger.info(
            f"Vacation {vacation.id} dates edited by {actor.id}: "
            f"{old_amount} -> {breakdown.working_days} working day(s)"
        )
        return vacation

    # ------------------------------------------------------------------
    # Periodic balance policies
    # ------------------------------------------------------------------

    def run_reward_check(self, employee_id: int, today: Optional[date] = None) -> RewardCheckResult:
        try:
            result = self.reward_policy.check(employee_id, today or self.clock())
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result

    def run_periodic_checks(self, employee_id: int, today: Optional[date] = None) -> Dict[str, Any]:
        """Anniversary reset followed by the monthly reward check, in one transaction."""
        today = today or self.clock()
        try:
            reset = self.reset_policy.apply(employee_id, today)
            reward = self.reward_policy.check(employee_id, today)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return {"annual_reset": reset, "reward": reward}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, request_id: int) -> VacationRequest:
        vacation = self.db.get(VacationRequest, request_id)
        if vacation is None:
            raise NotFoundError(f"Vacation request {request_id} not found")
        return vacation

    def get_for_actor(self, request_id: int, actor: User) -> VacationRequest:
        vacation = self.get(request_id)
        if not self.can_view(actor, vacation):
            raise AccessDeniedError("Access denied: you cannot view this vacation request.")
        return vacation

    @staticmethod
    def can_view(actor: User, vacation: VacationRequest) -> bool:
        if actor.id == vacation.employee_id:
            return True
        if actor.has_permission(Permission.VIEW_ALL_VACATIONS) or actor.has_permission(Permission.APPROVE_AS_PRINCIPAL):
            return True
        return (
            actor.has_permission(Permission.VIEW_DEPARTMENT_VACATIONS)
            and actor.department_id == vacation.department_id
        )

    def list_for_employee(self, employee_id: int) -> List[VacationRequest]:
        return self._list(VacationRequest.employee_id == employee_id)

    def list_for_department(self, department_id: int, status: Optional[str] = None) -> List[VacationRequest]:
        criteria = [VacationRequest.department_id == department_id]
        if status:
            criteria.append(VacationRequest.status == self._parse_status(status).value)
        return self._list(*criteria)

    def list_pending_for_chief(self, department_id: Optional[int]) -> List[VacationRequest]:
        criteria = [
            VacationRequest.status == VacationStatus.PENDING.value,
            VacationRequest.chief_review_required.is_(True),
        ]
        if department_id is not None:
            criteria.append(VacationRequest.department_id == department_id)
        return self._list(*criteria)

    def list_pending_for_principal(self) -> List[VacationRequest]:
        awaiting = (VacationRequest.status == VacationStatus.APPROVED_BY_CHIEF.value) | (
            (VacationRequest.status == VacationStatus.PENDING.value)
            & VacationRequest.chief_review_required.is_(False)
        )
        return self._list(awaiting)

    def list_all(
        self,
        status: Optional[str] = None,
        department_id: Optional[int] = None,
        employee_id: Optional[int] = None
    ) -> List[VacationRequest]:
        criteria = []
        if status:
            criteria.append(VacationRequest.status == self._parse_status(status).value)
        if department_id is not None:
            criteria.append(VacationRequest.department_id == department_id)
        if employee_id is not None:
            criteria.append(VacationRequest.employee_id == employee_id)
        return self._list(*criteria)

    def get_summary(self, employee_id: int, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or self.clock()
        employee = self._get_employee(employee_id)
        vacations = self.list_for_employee(employee_id)

        month_start = first_of_month(today)
        next_month = add_months(month_start, 1)
        year_start = date(today.year, 1, 1)
        next_year = date(today.year + 1, 1, 1)

        def usage(period_start: date, period_end: date) -> Dict[str, int]:
            held = [
                v for v in vacations
                if VacationStatus(v.status) in RESERVED_STATUSES and period_start <= v.start_date < period_end
            ]
            annual = sum(v.working_days for v in held if not v.is_reward_vacation)
            reward = sum(v.working_days for v in held if v.is_reward_vacation)
            return {"annual": annual, "reward": reward, "total": annual + reward}

        statuses = [VacationStatus(v.status) for v in vacations]
        if employee.last_reward_check is not None and employee.last_reward_check >= month_start:
            next_reward_check = next_month
        else:
            next_reward_check = today

        return {
            "user_id": employee.id,
            "annual_balance": employee.annual_vacation_balance,
            "reward_balance": employee.reward_vacation_balance,
            "total_available": employee.annual_vacation_balance + employee.reward_vacation_balance,
            "last_annual_reset": employee.last_annual_reset,
            "next_annual_reset": self.reset_policy.next_reset(employee, today),
            "last_reward_check": employee.last_reward_check,
            "next_reward_check": next_reward_check,
            "this_month_usage": usage(month_start, next_month),
            "this_year_usage": usage(year_start, next_year),
            "total_approved": statuses.count(VacationStatus.APPROVED),
            "total_pending": statuses.count(VacationStatus.PENDING) + statuses.count(VacationStatus.APPROVED_BY_CHIEF),
            "total_rejected": statuses.count(VacationStatus.REJECTED),
        }

    def get_statistics(self, department_id: Optional[int] = None) -> Dict[str, int]:
        scope = []
        if department_id is not None:
            scope.append(VacationRequest.department_id == department_id)

        counts = dict(
            self.db.execute(
                select(VacationRequest.status, func.count(VacationRequest.id))
                .where(*scope)
                .group_by(VacationRequest.status)
            ).all()
        )
        reward_vacations = self.db.execute(
            select(func.count(VacationRequest.id)).where(*scope, VacationRequest.is_reward_vacation.is_(True))
        ).scalar_one()
        days_used = self.db.execute(
            select(func.coalesce(func.sum(VacationRequest.working_days), 0)).where(
                *scope, VacationRequest.status == VacationStatus.APPROVED.value
            )
        ).scalar_one()

        return {
            "total": sum(counts.values()),
            "approved": counts.get(VacationStatus.APPROVED.value, 0),
            "pending": counts.get(VacationStatus.PENDING.value, 0) + counts.get(VacationStatus.APPROVED_BY_CHIEF.value, 0),
            "rejected": counts.get(VacationStatus.REJECTED.value, 0),
            "cancelled": counts.get(VacationStatus.CANCELLED.value, 0),
            "reward_vacations": reward_vacations,
            "total_working_days_used": int(days_used),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(
        self,
        vacation: VacationRequest,
        transition: Transition,
        actor: User,
        values: Dict[str, Any],
        details: Dict[str, Any]
    ) -> VacationRequest:
        """Apply a status transition and its ledger consequence as one unit of work."""
        before = vacation_snapshot(vacation)
        try:
            self._apply_transition(vacation, transition, values)
            if transition.restores_reservation:
                restored = self.ledger.restore(
                    vacation.employee_id, vacation.working_days, vacation.pool, vacation.id,
                    note=transition.action.value,
                )
                if not restored:
                    raise StaleStateError(f"Reservation of vacation {vacation.id} was already released.")
            self.db.refresh(vacation)
            self.audit.log_action(
                action=transition.action.value,
                entity_type=ENTITY_TYPE,
                entity_id=vacation.id,
                user_id=actor.id,
                user_role=actor.role.value,
                details=details,
                before_state=before,
                after_state=vacation_snapshot(vacation),
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(vacation)
        logger.info(
            f"Vacation {vacation.id} {transition.source.value} -> {transition.target.value} "
            f"by user {actor.id} ({transition.action.value})"
        )
        return vacation

    def _apply_transition(self, vacation: VacationRequest, transition: Transition, values: Dict[str, Any]) -> None:
        """
        Conditional update keyed on the status and version this caller saw.
        Zero rows affected means another caller moved the request first.
        """
        values = dict(values)
        values["status"] = transition.target.value
        values["version"] = VacationRequest.version + 1
        if transition.closure_reason is not None:
            values["closure_reason"] = transition.closure_reason.value

        result = self.db.execute(
            update(VacationRequest)
            .where(
                VacationRequest.id == vacation.id,
                VacationRequest.status == transition.source.value,
                VacationRequest.version == vacation.version,
            )
            .values(**values)
        )
        if result.rowcount != 1:
            logger.warning(
                f"Stale transition {transition.action.value} on vacation {vacation.id} "
                f"(expected status {transition.source.value}, version {vacation.version})"
            )
            raise StaleStateError()

    def _list(self, *criteria) -> List[VacationRequest]:
        stmt = (
            select(VacationRequest)
            .where(*criteria)
            .order_by(VacationRequest.created_at.desc(), VacationRequest.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def _validate_dates(self, start_date: date, end_date: date) -> None:
        if start_date < self.clock():
            raise ValidationError("Start date cannot be in the past.")
        if end_date < start_date:
            raise ValidationError("End date cannot be before start date.")

    @staticmethod
    def _breakdown(start_date: date, end_date: date) -> DayBreakdown:
        breakdown = calculate_working_days(start_date, end_date)
        if breakdown.working_days == 0:
            raise ZeroWorkingDaysError(
                f"No working days between {start_date.isoformat()} and {end_date.isoformat()}; "
                "weekend days are not counted."
            )
        return breakdown

    @staticmethod
    def _parse_type(vacation_type: Union[VacationType, str]) -> VacationType:
        try:
            return VacationType(vacation_type)
        except ValueError:
            raise ValidationError(f"Unknown vacation type '{vacation_type}'.")

    @staticmethod
    def _parse_status(status: str) -> VacationStatus:
        try:
            return VacationStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown vacation status '{status}'.")

    def _get_employee(self, employee_id: int) -> User:
        employee = self.db.get(User, employee_id)
        if employee is None:
            raise NotFoundError(f"Employee {employee_id} not found")
        return employee

    def _check_department(self, employee: User, department_id: int) -> None:
        department = self.db.get(Department, department_id)
        if department is None or not department.is_active:
            raise ValidationError(f"Department {department_id} does not exist.")
        if employee.department_id != department_id:
            raise ValidationError("Vacation requests must be filed under the employee's own department.")

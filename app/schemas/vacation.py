from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import List, Optional

from app.models.leave_ledger import LeavePool
from app.models.vacation_request import VacationType


class VacationCreate(BaseModel):
    department_id: int
    vacation_type: VacationType = VacationType.ANNUAL
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1, max_length=2000)
    is_reward_vacation: bool = False
    is_extension: bool = False


class CalculateRequest(BaseModel):
    start_date: date
    end_date: date
    is_reward_vacation: bool = False


class ReviewRequest(BaseModel):
    """Reviewer decision: chief sets approved_by_chief | rejected, principal sets approved | rejected."""
    status: str
    remarks: Optional[str] = Field(None, max_length=2000)


class EditDatesRequest(BaseModel):
    start_date: date
    end_date: date
    remarks: Optional[str] = Field(None, max_length=2000)


class CancelRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=2000)


class VacationResponse(BaseModel):
    id: int
    employee_id: int
    department_id: int
    vacation_type: str
    start_date: date
    end_date: date
    total_days: int
    working_days: int
    is_reward_vacation: bool
    is_extension: bool
    reason: str
    status: str
    closure_reason: Optional[str] = None
    chief_review_required: bool
    reviewed_by_chief_id: Optional[int] = None
    chief_remarks: Optional[str] = None
    chief_review_date: Optional[datetime] = None
    reviewed_by_principal_id: Optional[int] = None
    principal_remarks: Optional[str] = None
    principal_review_date: Optional[datetime] = None
    cancelled_by_id: Optional[int] = None
    cancellation_remarks: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    dates_edited_by_id: Optional[int] = None
    dates_edited_at: Optional[datetime] = None
    balance_before: int
    remaining_balance: int
    pool: LeavePool
    version: int
    allowed_actions: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DayBreakdownResponse(BaseModel):
    total_days: int
    working_days: int
    weekend_days: int
    weekend_dates: List[date]
    pool: str
    available_balance: int
    remaining_balance: int
    sufficient: bool


class PoolUsage(BaseModel):
    annual: int = 0
    reward: int = 0
    total: int = 0


class BalanceSummary(BaseModel):
    user_id: int
    annual_balance: int
    reward_balance: int
    total_available: int
    last_annual_reset: Optional[date] = None
    next_annual_reset: Optional[date] = None
    last_reward_check: Optional[date] = None
    next_reward_check: Optional[date] = None
    this_month_usage: PoolUsage
    this_year_usage: PoolUsage
    total_approved: int
    total_pending: int
    total_rejected: int


class RewardCheckResponse(BaseModel):
    awarded: bool
    days_awarded: int
    months_evaluated: List[date]
    message: str
    reward_balance: int


class VacationStatistics(BaseModel):
    total: int
    approved: int
    pending: int
    rejected: int
    cancelled: int
    reward_vacations: int
    total_working_days_used: int


class TransitionInfo(BaseModel):
    action: str
    from_status: str = Field(..., alias="from")
    to_status: str = Field(..., alias="to")
    required_permission: str
    decision_permission: Optional[str] = None
    scope: str
    route: str
    requires_remarks: bool
    restores_reservation: bool

    model_config = ConfigDict(populate_by_name=True)

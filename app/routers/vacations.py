"""
Vacation endpoints.

Thin HTTP layer over VacationService: resolves the caller, checks the
capability each route needs and wraps results in the ApiResponse envelope.
Workflow rules and balance arithmetic live in the service layer.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AccessDeniedError
from app.core.limiter import limiter
from app.core.permissions import Permission
from app.core.schemas import ApiResponse
from app.database import get_db
from app.models.user import User
from app.models.vacation_request import VacationRequest
from app.routers.auth_deps import check_department_access, get_current_user, require_permission
from app.schemas.vacation import (
    BalanceSummary,
    CalculateRequest,
    CancelRequest,
    DayBreakdownResponse,
    EditDatesRequest,
    ReviewRequest,
    RewardCheckResponse,
    TransitionInfo,
    VacationCreate,
    VacationResponse,
    VacationStatistics,
)
from app.services.vacation_service import VacationService
from app.services.workflow import workflow

router = APIRouter(prefix="/vacations")


def get_vacation_service(db: Session = Depends(get_db)) -> VacationService:
    return VacationService(db)


def _to_response(vacation: VacationRequest, actor: User) -> VacationResponse:
    response = VacationResponse.model_validate(vacation)
    response.allowed_actions = [
        action.value for action in workflow.allowed_actions(vacation)
        if workflow.can_perform(actor, vacation, action)
    ]
    return response


def _to_list(vacations: List[VacationRequest], actor: User) -> ApiResponse[List[VacationResponse]]:
    items = [_to_response(v, actor) for v in vacations]
    return ApiResponse.ok(items, metadata={"count": len(items)})


# --- Submission ---

@router.post("", response_model=ApiResponse[VacationResponse], status_code=201)
@limiter.limit(settings.submission_rate_limit)
def apply_vacation(
    request: Request,
    payload: VacationCreate,
    current_user: User = Depends(require_permission(Permission.APPLY_VACATION)),
    service: VacationService = Depends(get_vacation_service)
):
    vacation = service.submit(
        employee_id=current_user.id,
        department_id=payload.department_id,
        vacation_type=payload.vacation_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        is_reward_vacation=payload.is_reward_vacation,
        is_extension=payload.is_extension,
    )
    return ApiResponse.ok(_to_response(vacation, current_user))


@router.post("/calculate", response_model=ApiResponse[DayBreakdownResponse])
def calculate_days(
    payload: CalculateRequest,
    current_user: User = Depends(require_permission(Permission.APPLY_VACATION)),
    service: VacationService = Depends(get_vacation_service)
):
    preview = service.preview(
        current_user.id, payload.start_date, payload.end_date, payload.is_reward_vacation
    )
    return ApiResponse.ok(DayBreakdownResponse(**preview))


# --- Listings ---

@router.get("/my-vacations", response_model=ApiResponse[List[VacationResponse]])
def my_vacations(
    current_user: User = Depends(require_permission(Permission.VIEW_OWN_VACATIONS)),
    service: VacationService = Depends(get_vacation_service)
):
    return _to_list(service.list_for_employee(current_user.id), current_user)


@router.get("/pending/chief", response_model=ApiResponse[List[VacationResponse]])
def pending_for_chief(
    department_id: Optional[int] = Query(None),
    current_user: User = Depends(require_permission(Permission.APPROVE_AS_CHIEF)),
    service: VacationService = Depends(get_vacation_service)
):
    if current_user.has_permission(Permission.VIEW_ALL_VACATIONS):
        scope = department_id
    else:
        if department_id is not None and department_id != current_user.department_id:
            raise AccessDeniedError("Access denied. You can only review your own department.")
        scope = current_user.department_id
    return _to_list(service.list_pending_for_chief(scope), current_user)


@router.get("/pending/principal", response_model=ApiResponse[List[VacationResponse]])
def pending_for_principal(
    current_user: User = Depends(require_permission(Permission.APPROVE_AS_PRINCIPAL)),
    service: VacationService = Depends(get_vacation_service)
):
    return _to_list(service.list_pending_for_principal(), current_user)


@router.get("", response_model=ApiResponse[List[VacationResponse]])
def list_vacations(
    status: Optional[str] = Query(None),
    department: Optional[int] = Query(None),
    employee: Optional[int] = Query(None),
    current_user: User = Depends(require_permission(Permission.VIEW_ALL_VACATIONS)),
    service: VacationService = Depends(get_vacation_service)
):
    vacations = service.list_all(status=status, department_id=department, employee_id=employee)
    return _to_list(vacations, current_user)


@router.get("/department/{department_id}", response_model=ApiResponse[List[VacationResponse]])
def department_vacations(
    department_id: int,
    status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: VacationService = Depends(get_vacation_service)
):
    check_department_access(current_user, department_id)
    return _to_list(service.list_for_department(department_id, status), current_user)


# --- Balances ---

@router.get("/summary/me", response_model=ApiResponse[BalanceSummary])
def my_summary(
    current_user: User = Depends(get_current_user),
    service: VacationService = Depends(get_vacation_service)
):
    return ApiResponse.ok(BalanceSummary(**service.get_summary(current_user.id)))


@router.get("/summary/{user_id}", response_model=ApiResponse[BalanceSummary])
def user_summary(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: VacationService = Depends(get_vacation_service)
):
    if user_id != current_user.id and not current_user.has_permission(Permission.VIEW_OTHERS_PROFILE):
        raise AccessDeniedError("Access denied. Required permission: view_others_profile")
    return ApiResponse.ok(BalanceSummary(**service.get_summary(user_id)))


@router.post("/rewards/check", response_model=ApiResponse[RewardCheckResponse])
def check_my_rewards(
    current_user: User = Depends(get_current_user),
    service: VacationService = Depends(get_vacation_service)
):
    result = service.run_reward_check(current_user.id)
    return ApiResponse.ok(RewardCheckResponse(**result._asdict()))


@router.post("/rewards/check/{user_id}", response_model=ApiResponse[RewardCheckResponse])
def check_user_rewards(
    user_id: int,
    current_user: User = Depends(require_permission(Permission.MANAGE_USER_ROLES)),
    service: VacationService = Depends(get_vacation_service)
):
    result = service.run_reward_check(user_id)
    return ApiResponse.ok(RewardCheckResponse(**result._asdict()))


@router.get("/stats/overview", response_model=ApiResponse[VacationStatistics])
def statistics(
    department_id: Optional[int] = Query(None),
    current_user: User = Depends(require_permission(Permission.VIEW_STATISTICS)),
    service: VacationService = Depends(get_vacation_service)
):
    return ApiResponse.ok(VacationStatistics(**service.get_statistics(department_id)))


@router.get("/workflow/transitions", response_model=ApiResponse[List[TransitionInfo]])
def workflow_transitions(current_user: User = Depends(get_current_user)):
    items = [TransitionInfo(**t) for t in workflow.describe()]
    return ApiResponse.ok(items, metadata={"count": len(items)})


# --- Single request ---

@router.get("/{vacation_id}", response_model=ApiResponse[VacationResponse])
def get_vacation(
    vacation_id: int,
    current_user: User = Depends(get_current_user),
    service: VacationService = Depends(get_vacation_service)
):
    return ApiResponse.ok(_to_response(service.get_for_actor(vacation_id, current_user), current_user))


@router.put("/{vacation_id}/review/chief", response_model=ApiResponse[VacationResponse])
def chief_review(
    vacation_id: int,
    payload: ReviewRequest,
    current_user: User = Depends(require_permission(Permission.APPROVE_AS_CHIEF)),
    service: VacationService = Depends(get_vacation_service)
):
    vacation = service.chief_review(vacation_id, current_user, payload.status, payload.remarks)
    return ApiResponse.ok(_to_response(vacation, current_user))


@router.put("/{vacation_id}/review/principal", response_model=ApiResponse[VacationResponse])
def principal_review(
    vacation_id: int,
    payload: ReviewRequest,
    current_user: User = Depends(require_permission(Permission.APPROVE_AS_PRINCIPAL)),
    service: VacationService = Depends(get_vacation_service)
):
    vacation = service.principal_review(vacation_id, current_user, payload.status, payload.remarks)
    return ApiResponse.ok(_to_response(vacation, current_user))


@router.put("/{vacation_id}/dates", response_model=ApiResponse[VacationResponse])
def edit_dates(
    vacation_id: int,
    payload: EditDatesRequest,
    current_user: User = Depends(require_permission(Permission.APPROVE_AS_CHIEF)),
    service: VacationService = Depends(get_vacation_service)
):
    vacation = service.edit_dates(
        vacation_id, current_user, payload.start_date, payload.end_date, payload.remarks
    )
    return ApiResponse.ok(_to_response(vacation, current_user))


@router.post("/{vacation_id}/cancel", response_model=ApiResponse[VacationResponse])
def cancel_vacation(
    vacation_id: int,
    payload: Optional[CancelRequest] = None,
    current_user: User = Depends(get_current_user),
    service: VacationService = Depends(get_vacation_service)
):
    remarks = payload.remarks if payload else None
    vacation = service.cancel(vacation_id, current_user, remarks)
    return ApiResponse.ok(_to_response(vacation, current_user))

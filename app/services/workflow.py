"""
Vacation Approval Workflow

One explicit transition table owns every status change a vacation request can
go through, together with the capability each action requires and its scope.
Routers and the orchestration service ask this module; nothing else compares
statuses or roles to decide what may happen next.

    PENDING ──chief approve──────────> APPROVED_BY_CHIEF ──principal approve──> APPROVED
       │  └──chief/principal reject──> REJECTED <──principal reject──┘
       ├──principal approve (chief-exempt requester only)──────────────────────> APPROVED
       ├──cancel──> CANCELLED
       └──edit dates──> PENDING
"""
import enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.core.exceptions import AccessDeniedError, InvalidTransitionError, ValidationError
from app.core.permissions import Permission, requires_chief_review
from app.models.user import User, UserRole
from app.models.vacation_request import ClosureReason, VacationRequest, VacationStatus


class ReviewStage(str, enum.Enum):
    CHIEF = "chief"
    PRINCIPAL = "principal"


class ReviewDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class WorkflowAction(str, enum.Enum):
    CHIEF_APPROVE = "chief_approve"
    CHIEF_REJECT = "chief_reject"
    PRINCIPAL_APPROVE = "principal_approve"
    PRINCIPAL_REJECT = "principal_reject"
    EDIT_DATES = "edit_dates"
    CANCEL = "cancel"


class CapabilityScope(str, enum.Enum):
    DEPARTMENT = "department"    # reviewer must belong to the request's department
    INSTITUTION = "institution"  # unscoped
    OWNER = "owner"              # the requester, or a holder of the capability


class Route(str, enum.Enum):
    ANY = "any"
    CHIEF_REVIEWED = "chief_reviewed"
    CHIEF_EXEMPT = "chief_exempt"


@dataclass(frozen=True)
class Transition:
    action: WorkflowAction
    source: VacationStatus
    target: VacationStatus
    permission: Permission
    scope: CapabilityScope
    route: Route = Route.ANY
    requires_remarks: bool = False
    restores_reservation: bool = False
    closure_reason: Optional[ClosureReason] = None
    # Held in addition to permission, e.g. reject_vacation for rejections
    decision_permission: Optional[Permission] = None

    def applies_to(self, vacation: VacationRequest) -> bool:
        if self.route == Route.CHIEF_REVIEWED:
            return bool(vacation.chief_review_required)
        if self.route == Route.CHIEF_EXEMPT:
            return not vacation.chief_review_required
        return True

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "from": self.source.value,
            "to": self.target.value,
            "required_permission": self.permission.value,
            "decision_permission": self.decision_permission.value if self.decision_permission else None,
            "scope": self.scope.value,
            "route": self.route.value,
            "requires_remarks": self.requires_remarks,
            "restores_reservation": self.restores_reservation,
        }


TRANSITIONS: Tuple[Transition, ...] = (
    Transition(
        WorkflowAction.CHIEF_APPROVE, VacationStatus.PENDING, VacationStatus.APPROVED_BY_CHIEF,
        Permission.APPROVE_AS_CHIEF, CapabilityScope.DEPARTMENT, route=Route.CHIEF_REVIEWED,
    ),
    Transition(
        WorkflowAction.CHIEF_REJECT, VacationStatus.PENDING, VacationStatus.REJECTED,
        Permission.APPROVE_AS_CHIEF, CapabilityScope.DEPARTMENT, route=Route.CHIEF_REVIEWED,
        requires_remarks=True, restores_reservation=True, closure_reason=ClosureReason.REJECTED_BY_CHIEF,
        decision_permission=Permission.REJECT_VACATION,
    ),
    Transition(
        WorkflowAction.PRINCIPAL_APPROVE, VacationStatus.APPROVED_BY_CHIEF, VacationStatus.APPROVED,
        Permission.APPROVE_AS_PRINCIPAL, CapabilityScope.INSTITUTION,
        closure_reason=ClosureReason.APPROVED,
    ),
    Transition(
        WorkflowAction.PRINCIPAL_REJECT, VacationStatus.APPROVED_BY_CHIEF, VacationStatus.REJECTED,
        Permission.APPROVE_AS_PRINCIPAL, CapabilityScope.INSTITUTION,
        requires_remarks=True, restores_reservation=True, closure_reason=ClosureReason.REJECTED_BY_PRINCIPAL,
        decision_permission=Permission.REJECT_VACATION,
    ),
    Transition(
        WorkflowAction.PRINCIPAL_APPROVE, VacationStatus.PENDING, VacationStatus.APPROVED,
        Permission.APPROVE_AS_PRINCIPAL, CapabilityScope.INSTITUTION, route=Route.CHIEF_EXEMPT,
        closure_reason=ClosureReason.APPROVED,
    ),
    Transition(
        WorkflowAction.PRINCIPAL_REJECT, VacationStatus.PENDING, VacationStatus.REJECTED,
        Permission.APPROVE_AS_PRINCIPAL, CapabilityScope.INSTITUTION,
        requires_remarks=True, restores_reservation=True, closure_reason=ClosureReason.REJECTED_BY_PRINCIPAL,
        decision_permission=Permission.REJECT_VACATION,
    ),
    Transition(
        WorkflowAction.EDIT_DATES, VacationStatus.PENDING, VacationStatus.PENDING,
        Permission.APPROVE_AS_CHIEF, CapabilityScope.DEPARTMENT,
    ),
    Transition(
        WorkflowAction.CANCEL, VacationStatus.PENDING, VacationStatus.CANCELLED,
        Permission.CANCEL_VACATION, CapabilityScope.OWNER,
        restores_reservation=True, closure_reason=ClosureReason.CANCELLED,
    ),
)

_ACTIONS_BY_REVIEW: Dict[Tuple[ReviewStage, ReviewDecision], WorkflowAction] = {
    (ReviewStage.CHIEF, ReviewDecision.APPROVE): WorkflowAction.CHIEF_APPROVE,
    (ReviewStage.CHIEF, ReviewDecision.REJECT): WorkflowAction.CHIEF_REJECT,
    (ReviewStage.PRINCIPAL, ReviewDecision.APPROVE): WorkflowAction.PRINCIPAL_APPROVE,
    (ReviewStage.PRINCIPAL, ReviewDecision.REJECT): WorkflowAction.PRINCIPAL_REJECT,
}


class ApprovalWorkflow:
    def __init__(self, transitions: Tuple[Transition, ...] = TRANSITIONS):
        self.transitions = transitions
        self._by_key: Dict[Tuple[WorkflowAction, VacationStatus], Transition] = {
            (t.action, t.source): t for t in transitions
        }

    @staticmethod
    def requires_chief_review(role: UserRole) -> bool:
        return requires_chief_review(role)

    @staticmethod
    def action_for(stage: ReviewStage, decision: ReviewDecision) -> WorkflowAction:
        return _ACTIONS_BY_REVIEW[(stage, decision)]

    @staticmethod
    def decision_from_status(stage: ReviewStage, status: str) -> ReviewDecision:
        """
        Map the review API's requested status onto a decision:
        chief -> approved_by_chief | rejected, principal -> approved | rejected.
        """
        approve_status = (
            VacationStatus.APPROVED_BY_CHIEF if stage == ReviewStage.CHIEF else VacationStatus.APPROVED
        )
        if status == approve_status.value:
            return ReviewDecision.APPROVE
        if status == VacationStatus.REJECTED.value:
            return ReviewDecision.REJECT
        raise ValidationError(
            f"A {stage.value} review must set status to "
            f"'{approve_status.value}' or '{VacationStatus.REJECTED.value}', not '{status}'."
        )

    def _first(self, action: WorkflowAction) -> Transition:
        for transition in self.transitions:
            if transition.action == action:
                return transition
        raise KeyError(action)

    def required_capability(self, action: WorkflowAction) -> Tuple[Permission, CapabilityScope]:
        transition = self._first(action)
        return transition.permission, transition.scope

    def resolve(self, vacation: VacationRequest, action: WorkflowAction) -> Transition:
        """
        Find the transition for action from the request's current status.

        Raises:
            InvalidTransitionError: if the action is not defined from this
                status or not on this request's route
        """
        status = VacationStatus(vacation.status)
        transition = self._by_key.get((action, status))
        if transition is None:
            raise InvalidTransitionError(
                f"Cannot {action.value.replace('_', ' ')} a vacation request in status '{status.value}'.",
                details={"action": action.value, "status": status.value},
            )
        if not transition.applies_to(vacation):
            if transition.route == Route.CHIEF_EXEMPT:
                reason = "it still requires chief review"
            else:
                reason = "its requester is exempt from chief review"
            raise InvalidTransitionError(
                f"Cannot {action.value.replace('_', ' ')} this vacation request: {reason}.",
                details={"action": action.value, "status": status.value},
            )
        return transition

    def allowed_actions(self, vacation: VacationRequest) -> List[WorkflowAction]:
        status = VacationStatus(vacation.status)
        return [
            t.action for t in self.transitions
            if t.source == status and t.applies_to(vacation)
        ]

    def can_perform(self, actor: User, vacation: VacationRequest, action: WorkflowAction) -> bool:
        permission, scope = self.required_capability(action)
        if scope == CapabilityScope.OWNER:
            return actor.id == vacation.employee_id or actor.has_permission(permission)
        if actor.id == vacation.employee_id:
            # Nobody reviews their own request
            return False
        if not actor.has_permission(permission):
            return False
        extra = self._first(action).decision_permission
        if extra is not None and not actor.has_permission(extra):
            return False
        if scope == CapabilityScope.DEPARTMENT:
            return (
                actor.department_id == vacation.department_id
                or actor.has_permission(Permission.VIEW_ALL_VACATIONS)
            )
        return True

    def authorize(self, actor: User, vacation: VacationRequest, action: WorkflowAction) -> None:
        if not self.can_perform(actor, vacation, action):
            permission, scope = self.required_capability(action)
            raise AccessDeniedError(
                f"Access denied: '{action.value}' requires '{permission.value}' ({scope.value} scope)."
            )

    @staticmethod
    def validate_remarks(transition: Transition, remarks: Optional[str]) -> Optional[str]:
        cleaned = remarks.strip() if remarks else None
        if transition.requires_remarks and not cleaned:
            raise ValidationError("Remarks are required when rejecting a vacation request.")
        return cleaned

    def describe(self) -> List[dict]:
        return [t.to_dict() for t in self.transitions]


workflow = ApprovalWorkflow()

import pytest

from app.core.exceptions import AccessDeniedError, InvalidTransitionError, ValidationError
from app.core.permissions import (
    ROLE_PERMISSIONS,
    AuthorityLevel,
    Permission,
    authority_level,
    has_permission,
    requires_chief_review,
)
from app.models.user import UserRole
from app.models.vacation_request import VacationRequest, VacationStatus
from app.services.workflow import (
    ReviewDecision,
    ReviewStage,
    WorkflowAction,
    workflow,
)


def _request(employee, status=VacationStatus.PENDING, chief_review_required=True):
    return VacationRequest(
        employee_id=employee.id,
        department_id=employee.department_id,
        status=status.value,
        chief_review_required=chief_review_required,
    )


@pytest.mark.parametrize("role", [
    UserRole.INSTRUCTOR, UserRole.CRAFT_INSTRUCTOR, UserRole.ASSISTANT_INSTRUCTOR,
    UserRole.OFFICE_STAFF, UserRole.LAB_ASSISTANT, UserRole.LIBRARY_STAFF,
    UserRole.OTHER_EMPLOYEE, UserRole.GENERAL_SHAKHA,
])
def test_staff_roles_need_chief_review(role):
    assert requires_chief_review(role) is True


@pytest.mark.parametrize("role", [
    UserRole.CHIEF_INSTRUCTOR, UserRole.GENERAL_HEAD, UserRole.PRINCIPAL,
    UserRole.VICE_PRINCIPAL, UserRole.REGISTRAR_HEAD, UserRole.SUPER_ADMIN,
])
def test_chiefs_and_above_skip_chief_review(role):
    assert requires_chief_review(role) is False


def test_authority_levels_are_ordered():
    assert authority_level(UserRole.INSTRUCTOR) < authority_level(UserRole.CHIEF_INSTRUCTOR)
    assert authority_level(UserRole.CHIEF_INSTRUCTOR) == AuthorityLevel.DEPARTMENT_CHIEF
    assert authority_level(UserRole.PRINCIPAL) == AuthorityLevel.EXECUTIVE
    assert authority_level(UserRole.SUPER_ADMIN) == AuthorityLevel.ADMINISTRATOR


def test_capability_matrix():
    assert has_permission(UserRole.CHIEF_INSTRUCTOR, Permission.APPROVE_AS_CHIEF)
    assert not has_permission(UserRole.CHIEF_INSTRUCTOR, Permission.APPROVE_AS_PRINCIPAL)
    assert has_permission(UserRole.PRINCIPAL, Permission.APPROVE_AS_PRINCIPAL)
    assert not has_permission(UserRole.VICE_PRINCIPAL, Permission.APPROVE_AS_PRINCIPAL)
    assert not has_permission(UserRole.INSTRUCTOR, Permission.VIEW_ALL_VACATIONS)
    assert all(has_permission(UserRole.SUPER_ADMIN, p) for p in Permission)


class TestResolve:

    def test_chief_approve_from_pending(self, instructor):
        transition = workflow.resolve(_request(instructor), WorkflowAction.CHIEF_APPROVE)
        assert transition.target == VacationStatus.APPROVED_BY_CHIEF
        assert transition.restores_reservation is False

    def test_principal_approve_after_chief(self, instructor):
        vacation = _request(instructor, VacationStatus.APPROVED_BY_CHIEF)
        transition = workflow.resolve(vacation, WorkflowAction.PRINCIPAL_APPROVE)
        assert transition.target == VacationStatus.APPROVED

    def test_principal_cannot_skip_chief_for_staff(self, instructor):
        with pytest.raises(InvalidTransitionError):
            workflow.resolve(_request(instructor), WorkflowAction.PRINCIPAL_APPROVE)

    def test_principal_direct_path_for_exempt_requester(self, chief):
        vacation = _request(chief, chief_review_required=False)
        transition = workflow.resolve(vacation, WorkflowAction.PRINCIPAL_APPROVE)
        assert transition.target == VacationStatus.APPROVED

    def test_chief_cannot_review_exempt_requester(self, chief):
        with pytest.raises(InvalidTransitionError):
            workflow.resolve(_request(chief, chief_review_required=False), WorkflowAction.CHIEF_APPROVE)

    def test_principal_may_reject_pending_staff_request(self, instructor):
        transition = workflow.resolve(_request(instructor), WorkflowAction.PRINCIPAL_REJECT)
        assert transition.target == VacationStatus.REJECTED
        assert transition.requires_remarks is True
        assert transition.restores_reservation is True

    @pytest.mark.parametrize("status", [VacationStatus.APPROVED, VacationStatus.REJECTED, VacationStatus.CANCELLED])
    @pytest.mark.parametrize("action", list(WorkflowAction))
    def test_terminal_states_accept_nothing(self, instructor, status, action):
        with pytest.raises(InvalidTransitionError):
            workflow.resolve(_request(instructor, status), action)

    def test_approved_by_chief_cannot_be_cancelled_or_edited(self, instructor):
        vacation = _request(instructor, VacationStatus.APPROVED_BY_CHIEF)
        for action in (WorkflowAction.CANCEL, WorkflowAction.EDIT_DATES, WorkflowAction.CHIEF_APPROVE):
            with pytest.raises(InvalidTransitionError):
                workflow.resolve(vacation, action)

    def test_allowed_actions(self, instructor, chief):
        assert set(workflow.allowed_actions(_request(instructor))) == {
            WorkflowAction.CHIEF_APPROVE, WorkflowAction.CHIEF_REJECT,
            WorkflowAction.PRINCIPAL_REJECT, WorkflowAction.EDIT_DATES, WorkflowAction.CANCEL,
        }
        assert WorkflowAction.PRINCIPAL_APPROVE in workflow.allowed_actions(
            _request(chief, chief_review_required=False)
        )


class TestAuthorization:

    def test_department_chief_may_review(self, instructor, chief):
        assert workflow.can_perform(chief, _request(instructor), WorkflowAction.CHIEF_APPROVE)

    def test_other_department_chief_may_not(self, instructor, other_chief):
        with pytest.raises(AccessDeniedError):
            workflow.authorize(other_chief, _request(instructor), WorkflowAction.CHIEF_APPROVE)

    def test_staff_cannot_review(self, instructor, make_user, cst):
        colleague = make_user(UserRole.INSTRUCTOR, cst)
        assert not workflow.can_perform(colleague, _request(instructor), WorkflowAction.CHIEF_APPROVE)

    def test_principal_is_not_a_chief(self, instructor, principal):
        assert not workflow.can_perform(principal, _request(instructor), WorkflowAction.CHIEF_APPROVE)
        assert workflow.can_perform(principal, _request(instructor), WorkflowAction.PRINCIPAL_REJECT)

    def test_nobody_reviews_own_request(self, registrar):
        vacation = _request(registrar, chief_review_required=False)
        assert not workflow.can_perform(registrar, vacation, WorkflowAction.PRINCIPAL_APPROVE)

    def test_owner_may_cancel(self, instructor, make_user, cst):
        colleague = make_user(UserRole.INSTRUCTOR, cst)
        assert workflow.can_perform(instructor, _request(instructor), WorkflowAction.CANCEL)
        assert not workflow.can_perform(colleague, _request(instructor), WorkflowAction.CANCEL)

    def test_administrator_may_cancel_for_others(self, instructor, registrar):
        assert workflow.can_perform(registrar, _request(instructor), WorkflowAction.CANCEL)


class TestRemarksAndMapping:

    def test_rejection_requires_remarks(self, instructor):
        transition = workflow.resolve(_request(instructor), WorkflowAction.CHIEF_REJECT)
        for remarks in (None, "", "   "):
            with pytest.raises(ValidationError):
                workflow.validate_remarks(transition, remarks)
        assert workflow.validate_remarks(transition, "  overlaps exams ") == "overlaps exams"

    def test_approval_remarks_optional(self, instructor):
        transition = workflow.resolve(_request(instructor), WorkflowAction.CHIEF_APPROVE)
        assert workflow.validate_remarks(transition, None) is None

    def test_decision_from_status(self):
        assert workflow.decision_from_status(ReviewStage.CHIEF, "approved_by_chief") == ReviewDecision.APPROVE
        assert workflow.decision_from_status(ReviewStage.PRINCIPAL, "approved") == ReviewDecision.APPROVE
        assert workflow.decision_from_status(ReviewStage.PRINCIPAL, "rejected") == ReviewDecision.REJECT
        with pytest.raises(ValidationError):
            workflow.decision_from_status(ReviewStage.CHIEF, "approved")

    def test_describe_lists_every_transition(self):
        table = workflow.describe()
        assert len(table) == 8
        assert {"action", "from", "to", "required_permission", "scope"} <= set(table[0])


class TestRejectCapability:

    def test_rejections_need_reject_vacation(self, monkeypatch, instructor, chief):
        without_reject = ROLE_PERMISSIONS[UserRole.CHIEF_INSTRUCTOR] - {Permission.REJECT_VACATION}
        monkeypatch.setitem(ROLE_PERMISSIONS, UserRole.CHIEF_INSTRUCTOR, without_reject)

        assert workflow.can_perform(chief, _request(instructor), WorkflowAction.CHIEF_APPROVE)
        with pytest.raises(AccessDeniedError):
            workflow.authorize(chief, _request(instructor), WorkflowAction.CHIEF_REJECT)

    def test_reviewers_hold_reject_vacation(self, instructor, chief, principal):
        assert workflow.can_perform(chief, _request(instructor), WorkflowAction.CHIEF_REJECT)
        assert workflow.can_perform(principal, _request(instructor), WorkflowAction.PRINCIPAL_REJECT)
        rejections = [t for t in workflow.describe() if t["to"] == "rejected"]
        assert rejections and all(t["decision_permission"] == "reject_vacation" for t in rejections)

from datetime import date, datetime
from typing import Any, Optional

from app.models.audit_log import AuditLog
from app.models.vacation_request import VacationRequest
from app.services.base import BaseService


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(i) for i in value]
    return value


def vacation_snapshot(vacation: VacationRequest) -> dict:
    """The workflow-relevant fields of a request, for before/after audit states."""
    return {
        "status": vacation.status,
        "version": vacation.version,
        "start_date": vacation.start_date,
        "end_date": vacation.end_date,
        "working_days": vacation.working_days,
        "reviewed_by_chief_id": vacation.reviewed_by_chief_id,
        "reviewed_by_principal_id": vacation.reviewed_by_principal_id,
        "reservation_restored": vacation.reservation_restored,
    }


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        user_id: Optional[int],
        user_role: Optional[str],
        details: dict,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ) -> AuditLog:
        """
        Append an audit entry inside the caller's transaction, so the entry
        exists exactly when the audited change is committed.
        """
        db_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            user_role=user_role,
            details=_jsonable(details),
            before_state=_jsonable(before_state),
            after_state=_jsonable(after_state)
        )
        self.db.add(db_log)
        self.db.flush()
        return db_log

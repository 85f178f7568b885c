# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    user, department,
    vacation_request, leave_ledger,
    audit_log
)

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .department import Department
from .vacation_request import VacationRequest, VacationStatus, VacationType, ClosureReason
from .leave_ledger import LeaveLedgerEntry, LeavePool, LedgerEntryType
from .audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "Department",
    "VacationRequest",
    "VacationStatus",
    "VacationType",
    "ClosureReason",
    "LeaveLedgerEntry",
    "LeavePool",
    "LedgerEntryType",
    "AuditLog",
]

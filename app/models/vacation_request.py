from sqlalchemy import Column, Integer, String, Date, Boolean, ForeignKey, DateTime, Text, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base
from app.models.leave_ledger import LeavePool
import enum

class VacationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED_BY_CHIEF = "approved_by_chief"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

# Statuses whose reservation is still held (pending disposition or final)
RESERVED_STATUSES = frozenset({VacationStatus.PENDING, VacationStatus.APPROVED_BY_CHIEF, VacationStatus.APPROVED})

class VacationType(str, enum.Enum):
    ANNUAL = "annual"
    CASUAL = "casual"
    SICK = "sick"
    MATERNITY = "maternity"
    PATERNITY = "paternity"
    OTHER = "other"

class ClosureReason(str, enum.Enum):
    APPROVED = "approved"
    REJECTED_BY_CHIEF = "rejected_by_chief"
    REJECTED_BY_PRINCIPAL = "rejected_by_principal"
    CANCELLED = "cancelled"

class VacationRequest(Base):
    __tablename__ = "vacation_requests"
    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_vacation_date_order"),
        CheckConstraint("working_days >= 1", name="ck_vacation_working_days_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    vacation_type = Column(String, nullable=False, default=VacationType.ANNUAL.value)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Integer, nullable=False)
    working_days = Column(Integer, nullable=False)
    is_reward_vacation = Column(Boolean, nullable=False, default=False)
    reason = Column(Text, nullable=False)
    # Stored as the enum value string, like every status column in this service
    status = Column(String, nullable=False, default=VacationStatus.PENDING.value, index=True)

    # Routing decided once at submission from the requester's role
    chief_review_required = Column(Boolean, nullable=False, default=True)

    reviewed_by_chief_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    chief_remarks = Column(Text, nullable=True)
    chief_review_date = Column(DateTime(timezone=True), nullable=True)

    reviewed_by_principal_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    principal_remarks = Column(Text, nullable=True)
    principal_review_date = Column(DateTime(timezone=True), nullable=True)

    cancelled_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancellation_remarks = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    dates_edited_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    dates_edited_at = Column(DateTime(timezone=True), nullable=True)

    is_extension = Column(Boolean, nullable=False, default=False)

    # Ledger bookkeeping
    balance_before = Column(Integer, nullable=False)
    reservation_restored = Column(Boolean, nullable=False, default=False)
    closure_reason = Column(String, nullable=True)

    # Optimistic concurrency counter, bumped by every transition
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    employee = relationship("User", foreign_keys=[employee_id], back_populates="vacation_requests")
    department = relationship("Department", foreign_keys=[department_id])
    reviewed_by_chief = relationship("User", foreign_keys=[reviewed_by_chief_id])
    reviewed_by_principal = relationship("User", foreign_keys=[reviewed_by_principal_id])
    ledger_entries = relationship("LeaveLedgerEntry", back_populates="vacation", order_by="LeaveLedgerEntry.id")

    def __repr__(self):
        return f"<VacationRequest {self.id} {self.status} {self.start_date}..{self.end_date}>"

    @property
    def pool(self) -> LeavePool:
        return LeavePool.REWARD if self.is_reward_vacation else LeavePool.ANNUAL

    @property
    def remaining_balance(self) -> int:
        """Display projection: the pool balance once this request is charged."""
        return self.balance_before - self.working_days

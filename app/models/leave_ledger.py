"""
Append-only journal of every balance movement.

The live balances sit on the users row; each mutation there is paired with one
entry here so a balance can be explained line by line. Partial unique indexes
allow at most one RESERVE and one RESTORE per vacation request.
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Index, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base
import enum

class LeavePool(str, enum.Enum):
    ANNUAL = "annual"
    REWARD = "reward"

class LedgerEntryType(str, enum.Enum):
    RESERVE = "reserve"
    ADJUST = "adjust"
    RESTORE = "restore"
    ACCRUAL = "accrual"
    RESET = "reset"

class LeaveLedgerEntry(Base):
    __tablename__ = "leave_ledger_entries"
    __table_args__ = (
        Index(
            "uq_ledger_single_reserve", "vacation_id", unique=True,
            sqlite_where=text("entry_type = 'reserve'"),
            postgresql_where=text("entry_type = 'reserve'"),
        ),
        Index(
            "uq_ledger_single_restore", "vacation_id", unique=True,
            sqlite_where=text("entry_type = 'restore'"),
            postgresql_where=text("entry_type = 'restore'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vacation_id = Column(Integer, ForeignKey("vacation_requests.id"), nullable=True, index=True)
    pool = Column(String, nullable=False)
    entry_type = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # signed: negative debits the pool
    balance_after = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    vacation = relationship("VacationRequest", back_populates="ledger_entries")

    def __repr__(self):
        return f"<LeaveLedgerEntry {self.entry_type} {self.pool} {self.amount:+d}>"

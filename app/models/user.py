"""
Employee directory row.

The user-management side of the institution owns these records; the vacation
core only reads role/department and mutates the two balance columns through
BalanceLedger.
"""
from sqlalchemy import Column, Integer, String, Enum, Date, DateTime, Boolean, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base


class UserRole(str, enum.Enum):
    """
    Institution roles, most to least senior.

    - SUPER_ADMIN / REGISTRAR_HEAD: full administrative access
    - PRINCIPAL: institution head, final vacation approval
    - VICE_PRINCIPAL: senior management, oversight only
    - GENERAL_HEAD / CHIEF_INSTRUCTOR: department heads, first-level approval
    - GENERAL_SHAKHA: administrative office
    - Teaching and support staff
    """
    SUPER_ADMIN = "super_admin"
    REGISTRAR_HEAD = "registrar_head"
    PRINCIPAL = "principal"
    VICE_PRINCIPAL = "vice_principal"
    GENERAL_HEAD = "general_head"
    GENERAL_SHAKHA = "general_shakha"
    CHIEF_INSTRUCTOR = "chief_instructor"
    INSTRUCTOR = "instructor"
    CRAFT_INSTRUCTOR = "craft_instructor"
    ASSISTANT_INSTRUCTOR = "assistant_instructor"
    OFFICE_STAFF = "office_staff"
    LAB_ASSISTANT = "lab_assistant"
    LIBRARY_STAFF = "library_staff"
    OTHER_EMPLOYEE = "other_employee"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("annual_vacation_balance >= 0", name="ck_users_annual_balance_non_negative"),
        CheckConstraint("reward_vacation_balance >= 0", name="ck_users_reward_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)

    role = Column(Enum(UserRole), default=UserRole.OTHER_EMPLOYEE, nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)

    # Leave balances. Mutated only through BalanceLedger.
    annual_vacation_balance = Column(Integer, nullable=False, default=21)
    reward_vacation_balance = Column(Integer, nullable=False, default=0)
    hire_date = Column(Date, nullable=True)
    last_annual_reset = Column(Date, nullable=True)
    last_reward_check = Column(Date, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    department = relationship("Department", foreign_keys=[department_id], back_populates="employees")
    vacation_requests = relationship(
        "VacationRequest",
        foreign_keys="[VacationRequest.employee_id]",
        back_populates="employee",
    )

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    def has_permission(self, permission) -> bool:
        from app.core.permissions import has_permission
        return has_permission(self.role, permission)

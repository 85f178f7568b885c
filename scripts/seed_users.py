"""
Seed a demo department with one employee per approval tier.

    python -m scripts.seed_users
"""
from datetime import date

from app.database import SessionLocal, init_db
from app.models.department import Department
from app.models.user import User, UserRole

init_db()
db = SessionLocal()


def get_or_create_department(code, name):
    department = db.query(Department).filter(Department.code == code).first()
    if department:
        print(f"Department {code} already exists. Skipping.")
        return department
    department = Department(code=code, name=name, is_active=True)
    db.add(department)
    db.commit()
    db.refresh(department)
    print(f"Created department {code}")
    return department


def create_user(email, full_name, role, department):
    # Check if user already exists to avoid unique constraint errors
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        print(f"User {email} already exists. Skipping.")
        return existing_user

    user = User(
        email=email,
        full_name=full_name,
        role=role,
        department_id=department.id,
        hire_date=date.today().replace(day=1),
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    print(f"Created {role.value} -> {email} (id {user.id})")
    return user


department = get_or_create_department("CST", "Computer Science & Technology")

chief = create_user("chief@example.com", "Department Chief", UserRole.CHIEF_INSTRUCTOR, department)
if department.chief_user_id is None:
    department.chief_user_id = chief.id
    db.commit()

create_user("instructor@example.com", "Instructor", UserRole.INSTRUCTOR, department)
create_user("principal@example.com", "Principal", UserRole.PRINCIPAL, department)
create_user("registrar@example.com", "Registrar Head", UserRole.REGISTRAR_HEAD, department)

db.close()

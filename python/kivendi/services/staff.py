"""Staff account lookups."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from kivendi.db.models import Admin
from kivendi.schemas.moderation import StaffOut


def list_staff(db: Session) -> list[StaffOut]:
    admins = db.scalars(select(Admin).order_by(Admin.created_at.asc(), Admin.id.asc())).all()
    return [StaffOut.model_validate(a) for a in admins]


def staff_is_active(db: Session, admin_id: int) -> bool | None:
    """True/False for a known staff account, None when it does not exist."""
    admin = db.get(Admin, admin_id)
    return None if admin is None else admin.is_active

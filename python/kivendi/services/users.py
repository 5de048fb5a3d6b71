"""User lookups and account gates shared by the chat and boost services."""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from kivendi.db.models import AccountType, User
from kivendi.errors import ApiErrorCode, ForbiddenError, NotFoundError


def display_name(user: User) -> str:
    """Shop name for professionals that set one, else "first last"."""
    if user.account_type == AccountType.professional.value and (user.shop_name or "").strip():
        return user.shop_name.strip()
    return f"{user.first_name} {user.last_name}".strip()


def get_user(db: Session, user_id: int) -> User:
    """Load a user.

    Raises:
        NotFoundError(E_USER_NOT_FOUND): Unknown user.
    """
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return user


def load_users(db: Session, user_ids: Iterable[int]) -> dict[int, User]:
    """Batch-load users by id. Unknown ids are absent from the result."""
    ids = set(user_ids)
    if not ids:
        return {}
    rows = db.scalars(select(User).where(User.id.in_(ids))).all()
    return {user.id: user for user in rows}


def ensure_can_transact(user: User) -> None:
    """Blocked or unverified accounts cannot open conversations or buy boosts.

    Raises:
        ForbiddenError(E_ACCOUNT_BLOCKED | E_ACCOUNT_UNVERIFIED)
    """
    if user.is_blocked:
        raise ForbiddenError(ApiErrorCode.E_ACCOUNT_BLOCKED, "Account is blocked")
    if not user.is_verified:
        raise ForbiddenError(ApiErrorCode.E_ACCOUNT_UNVERIFIED, "Account is not verified")

"""Staff capability table.

Back-office permissions are expressed once, as a mapping from role to the
set of capabilities it holds. Routes declare the capability they need with
`require_capability(...)` instead of comparing role strings.

    admin      - every capability
    moderator  - view staff, moderate ads, manage reports, manage boosts
"""

from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Depends

from kivendi.auth.middleware import StaffViewer, get_staff
from kivendi.db.models import StaffRole
from kivendi.errors import ApiErrorCode, ForbiddenError


class Capability(str, Enum):
    """Back-office operations that are gated per role."""

    VIEW_STAFF = "view_staff"
    MANAGE_STAFF = "manage_staff"
    MODERATE_ADS = "moderate_ads"
    MANAGE_REPORTS = "manage_reports"
    MANAGE_BOOSTS = "manage_boosts"
    TOGGLE_MAINTENANCE = "toggle_maintenance"
    EDIT_LEGAL_PAGES = "edit_legal_pages"


ROLE_CAPABILITIES: dict[StaffRole, frozenset[Capability]] = {
    StaffRole.admin: frozenset(Capability),
    StaffRole.moderator: frozenset(
        {
            Capability.VIEW_STAFF,
            Capability.MODERATE_ADS,
            Capability.MANAGE_REPORTS,
            Capability.MANAGE_BOOSTS,
        }
    ),
}


def has_capability(role: str, capability: Capability) -> bool:
    """Pure check: does role hold capability? Unknown roles hold nothing."""
    try:
        staff_role = StaffRole(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES.get(staff_role, frozenset())


def require_capability(capability: Capability) -> Callable[[StaffViewer], StaffViewer]:
    """Build a dependency that admits staff holding capability.

    Usage:
        Moderator = Annotated[StaffViewer, Depends(require_capability(Capability.MODERATE_ADS))]

        @router.post("/admin/ads/{ad_id}/validate")
        def validate(staff: Moderator):
            ...
    """

    def dependency(staff: Annotated[StaffViewer, Depends(get_staff)]) -> StaffViewer:
        if not has_capability(staff.role, capability):
            raise ForbiddenError(
                ApiErrorCode.E_FORBIDDEN,
                f"Role '{staff.role}' cannot perform '{capability.value}'",
            )
        return staff

    return dependency

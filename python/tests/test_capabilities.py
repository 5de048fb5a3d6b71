"""Tests for the staff capability table.

Tests cover:
- Admin holds every capability
- Moderator holds the moderation set and nothing else
- Unknown roles hold nothing
- require_capability dependency admits or refuses a staff identity
"""

import pytest

from kivendi.auth.capabilities import (
    ROLE_CAPABILITIES,
    Capability,
    has_capability,
    require_capability,
)
from kivendi.auth.middleware import StaffViewer
from kivendi.db.models import StaffRole
from kivendi.errors import ApiErrorCode, ForbiddenError

MODERATOR_CAPABILITIES = {
    Capability.VIEW_STAFF,
    Capability.MODERATE_ADS,
    Capability.MANAGE_REPORTS,
    Capability.MANAGE_BOOSTS,
}


class TestRoleTable:
    """Tests for the role -> capability mapping."""

    @pytest.mark.parametrize("capability", list(Capability))
    def test_admin_holds_everything(self, capability):
        assert has_capability("admin", capability) is True

    @pytest.mark.parametrize("capability", list(Capability))
    def test_moderator(self, capability):
        expected = capability in MODERATOR_CAPABILITIES
        assert has_capability("moderator", capability) is expected

    def test_moderator_cannot_manage_staff(self):
        """Staff management, maintenance and legal pages stay admin-only."""
        assert has_capability("moderator", Capability.MANAGE_STAFF) is False
        assert has_capability("moderator", Capability.TOGGLE_MAINTENANCE) is False
        assert has_capability("moderator", Capability.EDIT_LEGAL_PAGES) is False

    @pytest.mark.parametrize("role", ["", "superadmin", "Admin", "user"])
    def test_unknown_role_holds_nothing(self, role):
        assert not any(has_capability(role, c) for c in Capability)

    def test_every_role_has_an_entry(self):
        assert set(ROLE_CAPABILITIES) == set(StaffRole)


class TestRequireCapability:
    """Tests for the route dependency."""

    def test_admits_holder(self):
        staff = StaffViewer(admin_id=3, role="moderator")

        assert require_capability(Capability.MODERATE_ADS)(staff) is staff

    def test_refuses_non_holder(self):
        dependency = require_capability(Capability.MANAGE_STAFF)

        with pytest.raises(ForbiddenError) as exc_info:
            dependency(StaffViewer(admin_id=3, role="moderator"))

        assert exc_info.value.code == ApiErrorCode.E_FORBIDDEN
        assert "manage_staff" in exc_info.value.message

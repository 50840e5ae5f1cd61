"""
Entitlement model tests.

Verifies:
- Deactivated accounts are never entitled, whatever the role or window
- Admins bypass the window
- Standard accounts are entitled up to and including the window end
- Days-until-expiry and expiring-soon reporting
"""

from datetime import datetime, timedelta

import pytest

from authgate.errors import AccountDeactivated, EntitlementExpired
from authgate.services import entitlement_service
from authgate.services.entitlement_service import AdminAccount, StandardAccount


NOW = datetime(2026, 3, 1, 12, 0, 0)


def standard(active=True, end=NOW + timedelta(days=10)):
    return StandardAccount(active=active, package_id=1, window_end=end)


# =============================================================================
# IS_ENTITLED
# =============================================================================


class TestIsEntitled:

    @pytest.mark.parametrize(
        "account",
        [
            AdminAccount(active=False),
            StandardAccount(active=False, package_id=1, window_end=NOW + timedelta(days=365)),
            StandardAccount(active=False, package_id=1, window_end=NOW - timedelta(days=1)),
        ],
    )
    def test_inactive_is_never_entitled(self, account):
        assert entitlement_service.is_entitled(account, NOW) is False

    def test_admin_has_no_window(self):
        assert entitlement_service.is_entitled(AdminAccount(active=True), NOW) is True
        assert entitlement_service.is_entitled(AdminAccount(active=True), NOW + timedelta(days=10_000)) is True

    def test_window_end_itself_is_entitled(self):
        account = standard(end=NOW)
        assert entitlement_service.is_entitled(account, NOW) is True

    def test_one_second_past_end_is_not_entitled(self):
        account = standard(end=NOW)
        assert entitlement_service.is_entitled(account, NOW + timedelta(seconds=1)) is False

    def test_accepts_account_rows(self, alice):
        assert entitlement_service.is_entitled(alice, NOW) is True
        assert entitlement_service.is_entitled(alice, alice.package_end_date + timedelta(seconds=1)) is False


class TestAccountFromUser:

    def test_admin_row_becomes_admin_variant(self, admin_user):
        account = entitlement_service.account_from_user(admin_user)
        assert account == AdminAccount(active=True)

    def test_standard_row_carries_window(self, alice):
        account = entitlement_service.account_from_user(alice)
        assert isinstance(account, StandardAccount)
        assert account.package_id == alice.package_id
        assert account.window_end == alice.package_end_date


class TestRequireEntitled:

    def test_deactivated_reported_before_expiry(self):
        account = standard(active=False, end=NOW - timedelta(days=1))
        with pytest.raises(AccountDeactivated):
            entitlement_service.require_entitled(account, NOW)

    def test_expired(self):
        with pytest.raises(EntitlementExpired):
            entitlement_service.require_entitled(standard(end=NOW - timedelta(seconds=1)), NOW)

    def test_entitled_passes(self):
        entitlement_service.require_entitled(standard(), NOW)


# =============================================================================
# EXPIRY REPORTING
# =============================================================================


class TestExpiryReporting:

    def test_days_until_expiry_rounds_up(self):
        account = standard(end=NOW + timedelta(days=2, hours=1))
        assert entitlement_service.days_until_expiry(account, NOW) == 3

    def test_days_until_expiry_negative_once_expired(self):
        account = standard(end=NOW - timedelta(days=3))
        assert entitlement_service.days_until_expiry(account, NOW) == -3

    def test_days_until_expiry_none_for_admin(self):
        assert entitlement_service.days_until_expiry(AdminAccount(active=True), NOW) is None

    def test_expiring_within(self):
        assert entitlement_service.is_expiring_within(standard(end=NOW + timedelta(days=5)), 7, NOW) is True
        assert entitlement_service.is_expiring_within(standard(end=NOW + timedelta(days=8)), 7, NOW) is False
        assert entitlement_service.is_expiring_within(standard(end=NOW - timedelta(days=1)), 7, NOW) is False

    def test_inactive_and_admin_never_expiring(self):
        assert entitlement_service.is_expiring_within(
            standard(active=False, end=NOW + timedelta(days=1)), 7, NOW
        ) is False
        assert entitlement_service.is_expiring_within(AdminAccount(active=True), 7, NOW) is False

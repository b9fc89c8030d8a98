"""
Pytest configuration and fixtures for the loyalty engine tests
"""

import pytest

from core.constants import LoyaltyPolicy
from core.models import Merchant, MerchantLoyaltyConfig, MerchantStatus, User, Wallet
from core.services import LoyaltyServices


@pytest.fixture
def policy() -> LoyaltyPolicy:
	return LoyaltyPolicy(points_per_dollar=1000, max_conflict_retries=3, auto_provision_plan=None)


@pytest.fixture
def services(policy) -> LoyaltyServices:
	return LoyaltyServices(policy)


@pytest.fixture
def make_user(db):
	def _make(email="customer@example.com", display_name="Customer"):
		return User.objects.create(email=email, display_name=display_name)
	return _make


@pytest.fixture
def user(make_user) -> User:
	return make_user()


@pytest.fixture
def make_merchant(db):
	def _make(business_name="Chai Corner", status=MerchantStatus.ACTIVE, **config):
		"""
		Create a merchant; pass config fields (e.g. point_bank_included=1000) to
		also give it a loyalty config.
		"""
		merchant = Merchant.objects.create(business_name=business_name, status=status)
		if config:
			MerchantLoyaltyConfig.objects.create(merchant=merchant, **config)
		return merchant
	return _make


@pytest.fixture
def merchant(make_merchant) -> Merchant:
	return make_merchant(issue_rate_per_dollar=50, redeem_cap_percentage=20, point_bank_included=1000, point_bank_purchased=0)


@pytest.fixture
def fund_wallet(db):
	def _fund(user, points):
		wallet, _ = Wallet.objects.get_or_create(user=user)
		Wallet.objects.filter(pk=wallet.pk).update(total_points=points)
		wallet.refresh_from_db()
		return wallet
	return _fund

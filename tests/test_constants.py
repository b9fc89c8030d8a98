"""Tests for point arithmetic and bucket allocation."""

from decimal import Decimal

import pytest

from core.constants import PLANS, LoyaltyPolicy, get_plan
from core.errors import InvalidInput


@pytest.fixture
def policy() -> LoyaltyPolicy:
	return LoyaltyPolicy(points_per_dollar=1000)


class TestPointsForBill:

	def test_twenty_dollars_at_fifty_per_dollar(self, policy) -> None:
		assert policy.points_for_bill(2000, 50) == 1000

	def test_floors_partial_points(self, policy) -> None:
		# $0.99 * 50 = 49.5
		assert policy.points_for_bill(99, 50) == 49

	def test_one_cent_rounds_to_zero(self, policy) -> None:
		assert policy.points_for_bill(1, 50) == 0

	def test_zero_rate_issues_nothing(self, policy) -> None:
		assert policy.points_for_bill(10_000, 0) == 0


class TestRedemptionCap:

	def test_five_dollar_bill_at_twenty_percent(self, policy) -> None:
		# 20% of $5.00 = $1.00 = 1000 points
		assert policy.max_redeemable_points(500, 20) == 1000

	def test_fifty_dollar_bill_at_twenty_percent(self, policy) -> None:
		# 20% of $50.00 = $10.00 = 10000 points
		assert policy.max_redeemable_points(5000, 20) == 10_000

	def test_zero_cap(self, policy) -> None:
		assert policy.max_redeemable_points(5000, 0) == 0

	def test_floors(self, policy) -> None:
		# 20% of $0.01 = 0.2 cents = 2 points
		assert policy.max_redeemable_points(1, 20) == 2
		assert policy.max_redeemable_points(3, 15) == 4

	def test_uses_configured_rate(self) -> None:
		assert LoyaltyPolicy(points_per_dollar=100).max_redeemable_points(5000, 20) == 1000


class TestCurrency:

	def test_points_to_currency(self, policy) -> None:
		assert policy.points_to_currency(1000) == Decimal("1.00")
		assert policy.points_to_currency(1234) == Decimal("1.23")
		assert policy.points_to_currency(0) == Decimal("0.00")

	def test_cents_to_dollars(self, policy) -> None:
		assert policy.cents_to_dollars(2000) == Decimal("20.00")
		assert policy.cents_to_dollars(1999) == Decimal("19.99")


class TestAllocate:

	def test_draws_from_included_when_it_covers(self, policy) -> None:
		a = policy.allocate(1000, 0, 1000)
		assert (a.new_included, a.new_purchased, a.bucket_used) == (0, 0, "Included")

	def test_mixed_when_included_short(self, policy) -> None:
		a = policy.allocate(800, 500, 1000)
		assert (a.new_included, a.new_purchased, a.bucket_used) == (0, 300, "Mixed")

	def test_one_point_past_included_is_mixed(self, policy) -> None:
		a = policy.allocate(999, 10, 1000)
		assert (a.new_included, a.new_purchased, a.bucket_used) == (0, 9, "Mixed")

	def test_purchased_untouched_while_included_covers(self, policy) -> None:
		a = policy.allocate(5000, 700, 1000)
		assert a.new_purchased == 700
		assert a.new_included == 4000


class TestPlans:

	def test_beta_free_plan(self) -> None:
		plan = get_plan("beta-free")
		assert plan.included_points == 20000
		assert plan.issue_rate_per_dollar == 50
		assert plan.redeem_cap_percentage == 20
		assert plan.subscription_status == "beta-free"

	def test_unknown_plan(self) -> None:
		with pytest.raises(InvalidInput):
			get_plan("platinum")

	def test_plans_are_named_by_key(self) -> None:
		for name, plan in PLANS.items():
			assert plan.name == name

"""Tests for point redemption (burn)."""

from decimal import Decimal

import pytest

from core.errors import (
	ExceedsRedemptionCap, InsufficientBalance, InvalidInput, MerchantNotFound, MerchantNotParticipating,
	ReferenceReused, UserNotFound,
)
from core.models import LedgerEntry, MerchantLoyaltyConfig, UserMerchantEarning, Wallet


pytestmark = pytest.mark.django_db


@pytest.fixture
def shop(make_merchant):
	return make_merchant("Samosa Shop", redeem_cap_percentage=20, point_bank_included=3000, point_bank_purchased=200)


class TestRedeemScenarios:

	def test_redeem_up_to_cap_empties_wallet(self, services, user, shop, fund_wallet) -> None:
		fund_wallet(user, 1000)
		# 20% of $5.00 = $1.00 = 1000 points
		receipt = services.redeem(user.id, shop.id, 500, 1000)

		assert receipt.points_redeemed == 1000
		assert receipt.max_redeemable_points == 1000
		assert receipt.new_wallet_balance == 0
		assert receipt.cad_value == Decimal("1.00")
		assert receipt.bill_dollars == Decimal("5.00")
		assert Wallet.objects.get(user=user).total_points == 0

	def test_one_point_over_cap_fails(self, services, user, shop, fund_wallet) -> None:
		fund_wallet(user, 5000)
		with pytest.raises(ExceedsRedemptionCap) as excinfo:
			services.redeem(user.id, shop.id, 500, 1001)

		assert excinfo.value.context["max_redeemable"] == 1000
		assert excinfo.value.context["requested"] == 1001
		assert Wallet.objects.get(user=user).total_points == 5000
		assert LedgerEntry.objects.count() == 0

	def test_fifty_dollar_bill(self, services, user, shop, fund_wallet) -> None:
		fund_wallet(user, 20_000)
		receipt = services.redeem(user.id, shop.id, 5000, 10_000)
		assert receipt.max_redeemable_points == 10_000
		assert receipt.cad_value == Decimal("10.00")
		with pytest.raises(ExceedsRedemptionCap):
			services.redeem(user.id, shop.id, 5000, 10_001)

	def test_insufficient_balance(self, services, user, shop, fund_wallet) -> None:
		fund_wallet(user, 500)
		with pytest.raises(InsufficientBalance) as excinfo:
			services.redeem(user.id, shop.id, 5000, 1000)

		assert excinfo.value.context == {"requested": 1000, "available": 500, "shortfall": 500}
		assert Wallet.objects.get(user=user).total_points == 500
		assert LedgerEntry.objects.count() == 0

	def test_user_without_wallet_has_zero_balance(self, services, user, shop) -> None:
		with pytest.raises(InsufficientBalance):
			services.redeem(user.id, shop.id, 5000, 1)
		# the attempt rolled back, lazily-created wallet included
		assert not Wallet.objects.filter(user=user).exists()

	def test_cap_checked_before_balance(self, services, user, shop) -> None:
		with pytest.raises(ExceedsRedemptionCap):
			services.redeem(user.id, shop.id, 500, 5000)


class TestRedeemIsAPureSink:

	def test_merchant_bank_and_earnings_unchanged(self, services, user, shop) -> None:
		issued = services.issue(user.email, shop.id, 2000)
		assert issued.points_issued == 1000
		before = MerchantLoyaltyConfig.objects.get(merchant=shop)

		services.redeem(user.id, shop.id, 5000, 600)

		after = MerchantLoyaltyConfig.objects.get(merchant=shop)
		assert (after.point_bank_included, after.point_bank_purchased) == (before.point_bank_included, before.point_bank_purchased)
		assert UserMerchantEarning.objects.get(user=user, merchant=shop).total_earned == 1000
		assert Wallet.objects.get(user=user).total_points == 400

	def test_points_earned_elsewhere_are_spendable(self, services, user, shop, make_merchant) -> None:
		issuer = make_merchant("Issuer", issue_rate_per_dollar=50, point_bank_included=5000)
		services.issue(user.email, issuer.id, 2000)

		receipt = services.redeem(user.id, shop.id, 5000, 1000)
		assert receipt.new_wallet_balance == 0
		assert not UserMerchantEarning.objects.filter(user=user, merchant=shop).exists()

	def test_burn_entry(self, services, user, shop, fund_wallet) -> None:
		fund_wallet(user, 1000)
		receipt = services.redeem(user.id, shop.id, 500, 250, reference="POS-1")
		entry = LedgerEntry.objects.get(pk=receipt.ledger_entry_id)
		assert entry.type == "burn"
		assert entry.points == 250
		assert entry.cents_value == 500
		assert entry.bucket_used == ""
		assert entry.reference == "POS-1"


class TestRedeemValidation:

	def test_merchant_without_config(self, services, user, make_merchant, fund_wallet) -> None:
		fund_wallet(user, 1000)
		with pytest.raises(MerchantNotParticipating):
			services.redeem(user.id, make_merchant().id, 500, 100)

	@pytest.mark.parametrize("merchant_id", ["00000000-0000-0000-0000-000000000000", "not-a-uuid"])
	def test_unknown_merchant(self, services, user, merchant_id) -> None:
		with pytest.raises(MerchantNotFound) as excinfo:
			services.redeem(user.id, merchant_id, 500, 100)
		assert excinfo.value.status == 404

	def test_unknown_user(self, services, shop) -> None:
		with pytest.raises(UserNotFound):
			services.redeem("00000000-0000-0000-0000-000000000000", shop.id, 500, 100)

	@pytest.mark.parametrize("cents,points", [(0, 10), (500, 0), (-1, 10), (500, -3), (500, 1.5)])
	def test_amounts_must_be_positive_ints(self, services, user, shop, cents, points) -> None:
		with pytest.raises(InvalidInput):
			services.redeem(user.id, shop.id, cents, points)


class TestRedeemIdempotency:

	def test_replay_does_not_burn_twice(self, services, user, shop, fund_wallet) -> None:
		fund_wallet(user, 1000)
		first = services.redeem(user.id, shop.id, 500, 400, reference="POS-2")
		second = services.redeem(user.id, shop.id, 500, 400, reference="POS-2")

		assert second.replayed is True
		assert second.ledger_entry_id == first.ledger_entry_id
		assert second.new_wallet_balance == 600
		assert Wallet.objects.get(user=user).total_points == 600
		assert LedgerEntry.objects.filter(type="burn").count() == 1

	def test_reference_reused_by_another_user_is_rejected(self, services, user, shop, make_user, fund_wallet) -> None:
		other = make_user("bob@example.com")
		fund_wallet(user, 1000)
		fund_wallet(other, 3000)
		services.redeem(user.id, shop.id, 5000, 1000, reference="TABLE-5")

		with pytest.raises(ReferenceReused) as excinfo:
			services.redeem(other.id, shop.id, 5000, 200, reference="TABLE-5")

		assert "user_id" in excinfo.value.context["mismatched"]
		assert "newWalletBalance" not in str(excinfo.value.as_dict())
		assert Wallet.objects.get(user=other).total_points == 3000
		assert Wallet.objects.get(user=user).total_points == 0
		assert LedgerEntry.objects.filter(type="burn").count() == 1

	@pytest.mark.parametrize("cents,points,field", [(5000, 300, "points"), (4000, 400, "cents_value")])
	def test_reference_reused_with_other_amounts_is_rejected(self, services, user, shop, fund_wallet,
			cents, points, field) -> None:
		fund_wallet(user, 1000)
		services.redeem(user.id, shop.id, 5000, 400, reference="POS-3")

		with pytest.raises(ReferenceReused) as excinfo:
			services.redeem(user.id, shop.id, cents, points, reference="POS-3")

		assert excinfo.value.context["mismatched"] == [field]
		assert Wallet.objects.get(user=user).total_points == 600

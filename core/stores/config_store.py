"""Merchant loyalty config store: rate, cap and the two-bucket point bank."""

import logging

from core.constants import ProvisioningPlan
from core.errors import InvalidInput
from core.models import MerchantLoyaltyConfig, MerchantStatus, PARTICIPATING_STATUSES
from .base import compare_and_set

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
	"issue_rate_per_dollar",
	"redeem_cap_percentage",
	"point_bank_included",
	"point_bank_purchased",
	"subscription_tier",
	"subscription_status",
})


class MerchantConfigStore:

	@staticmethod
	def get(merchant_id) -> MerchantLoyaltyConfig | None:
		return MerchantLoyaltyConfig.objects.filter(merchant_id=merchant_id).first()

	@staticmethod
	def lock(merchant_id) -> MerchantLoyaltyConfig | None:
		"""
		Read the config under SELECT ... FOR UPDATE (inside transaction.atomic())
		"""
		return MerchantLoyaltyConfig.objects.select_for_update().filter(merchant_id=merchant_id).first()

	@staticmethod
	def create(merchant_id, plan: ProvisioningPlan) -> MerchantLoyaltyConfig:
		"""
		Provision a config from a plan. Raises IntegrityError if one already exists.
		"""
		config = MerchantLoyaltyConfig.objects.create(
			merchant_id=merchant_id,
			issue_rate_per_dollar=plan.issue_rate_per_dollar,
			redeem_cap_percentage=plan.redeem_cap_percentage,
			point_bank_included=plan.included_points,
			point_bank_purchased=0,
			subscription_tier=plan.subscription_tier,
			subscription_status=plan.subscription_status,
		)
		logger.info("Provisioned loyalty config for merchant %s on plan %s", merchant_id, plan.name)
		return config

	@staticmethod
	def update(config_id, partial: dict, expected_version: int | None = None) -> MerchantLoyaltyConfig:
		"""
		Apply a partial update. No cross-field validation happens here.
		"""
		unknown = set(partial) - UPDATABLE_FIELDS
		if unknown:
			raise InvalidInput(f"Unknown config fields: {', '.join(sorted(unknown))}", fields=sorted(unknown))
		return compare_and_set(MerchantLoyaltyConfig, config_id, expected_version, **partial)

	@staticmethod
	def list_participating():
		"""
		Configs accepting redemptions, for active merchants only
		"""
		return (
			MerchantLoyaltyConfig.objects
			.select_related("merchant")
			.filter(subscription_status__in=PARTICIPATING_STATUSES, merchant__status=MerchantStatus.ACTIVE)
			.order_by("merchant__business_name")
		)

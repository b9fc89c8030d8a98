"""Per (user, merchant) cumulative earnings. Informational, never spent from."""

from core.models import UserMerchantEarning
from .base import compare_and_set


class EarningsAggregator:

	@staticmethod
	def get_or_create(user_id, merchant_id) -> UserMerchantEarning:
		earning, _ = UserMerchantEarning.objects.get_or_create(
			user_id=user_id, merchant_id=merchant_id, defaults={"total_earned": 0},
		)
		return earning

	@staticmethod
	def set_total(earning_id, new_total: int, expected_version: int | None = None) -> UserMerchantEarning:
		return compare_and_set(UserMerchantEarning, earning_id, expected_version, total_earned=new_total)

	@staticmethod
	def list_for_user(user_id):
		return (
			UserMerchantEarning.objects
			.select_related("merchant")
			.filter(user_id=user_id)
			.order_by("-total_earned", "merchant__business_name")
		)

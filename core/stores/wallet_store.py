"""Wallet store: one spendable balance row per user.

Only LoyaltyServices writes through this store.
"""

import logging

from core.models import Wallet
from .base import compare_and_set

logger = logging.getLogger(__name__)


class WalletStore:

	@staticmethod
	def get_or_create(user_id) -> Wallet:
		"""
		Return the user's wallet, creating it with 0 points on first access
		"""
		wallet, created = Wallet.objects.get_or_create(user_id=user_id, defaults={"total_points": 0})
		if created:
			logger.info("Created wallet %s for user %s", wallet.id, user_id)
		return wallet

	@staticmethod
	def lock(user_id) -> Wallet:
		"""
		Get-or-create, then re-read the row under SELECT ... FOR UPDATE.
		Must be called inside transaction.atomic().
		"""
		WalletStore.get_or_create(user_id)
		return Wallet.objects.select_for_update().get(user_id=user_id)

	@staticmethod
	def set_balance(wallet_id, new_balance: int, expected_version: int | None = None) -> Wallet:
		"""
		Overwrite total_points. Caller guarantees new_balance >= 0.
		"""
		return compare_and_set(Wallet, wallet_id, expected_version, total_points=new_balance)

"""Transaction orchestration for the loyalty engine.

LoyaltyServices is the only writer of wallets, merchant configs and earnings.
Each issue/redeem attempt runs in one @transaction.atomic block:
  lock rows → validate → append ledger entry → config → wallet → earnings
Rows are read with select_for_update() and written with a version
compare-and-swap, so a concurrent writer forces a rollback + retry instead of
an overdraft. Duplicate (merchant, reference) requests replay the prior receipt.
"""

import logging
import random
import time
from dataclasses import dataclass, asdict
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction, IntegrityError, OperationalError

from .constants import LoyaltyPolicy, ProvisioningPlan, get_plan
from .errors import (
	AccessDenied, AmountTooSmall, Conflict, ExceedsRedemptionCap, InsufficientBalance,
	InsufficientPointBank, InvalidInput, InvalidRange, LoyaltyError, MerchantNotFound, MerchantNotParticipating,
	ReferenceReused, UserNotFound,
)
from .models import LedgerEntry, LedgerEntryType, Merchant, MerchantStatus, SubscriptionStatus, User
from .stores import EarningsAggregator, Ledger, MerchantConfigStore, WalletStore

logger = logging.getLogger(__name__)

# Substrings of driver errors that mean "another transaction got there first"
_LOCK_ERROR_MARKERS = ("locked", "could not serialize", "deadlock", "lock timeout")


@dataclass(frozen=True)
class IssueReceipt:
	points_issued: int
	bill_dollars: Decimal
	bucket_used: str
	new_included: int
	new_purchased: int
	ledger_entry_id: int
	user_email: str
	bill_amount_cents: int
	replayed: bool = False

	def as_dict(self) -> dict:
		return {
			"pointsIssued": self.points_issued,
			"billDollars": f"{self.bill_dollars:.2f}",
			"bucketUsed": str(self.bucket_used),
			"remainingBank": {
				"included": self.new_included,
				"purchased": self.new_purchased,
				"total": self.new_included + self.new_purchased,
			},
			"ledgerEntryId": self.ledger_entry_id,
			"replayed": self.replayed,
		}


@dataclass(frozen=True)
class RedeemReceipt:
	points_redeemed: int
	cad_value: Decimal
	bill_dollars: Decimal
	new_wallet_balance: int
	max_redeemable_points: int
	ledger_entry_id: int
	replayed: bool = False

	def as_dict(self) -> dict:
		data = asdict(self)
		return {
			"pointsRedeemed": data["points_redeemed"],
			"cadValue": f"{self.cad_value:.2f}",
			"billDollars": f"{self.bill_dollars:.2f}",
			"newWalletBalance": data["new_wallet_balance"],
			"maxRedeemablePoints": data["max_redeemable_points"],
			"ledgerEntryId": data["ledger_entry_id"],
			"replayed": data["replayed"],
		}


def _require_positive_int(name: str, value) -> int:
	if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
		raise InvalidInput(f"{name} must be a positive integer", field=name, value=value)
	return value


def _clean_reference(reference) -> str | None:
	if reference is None:
		return None
	reference = str(reference).strip()
	if len(reference) > 255:
		raise InvalidInput("reference must be at most 255 characters", field="reference")
	return reference or None


def _is_lock_error(exc: OperationalError) -> bool:
	text = str(exc).lower()
	return any(marker in text for marker in _LOCK_ERROR_MARKERS)


def _check_same_transaction(entry: LedgerEntry, reference: str, **expected):
	"""
	A reference may only replay the transaction it was first used for.
	`expected` maps LedgerEntry attribute names to the values of the new request.
	"""
	mismatched = sorted(name for name, value in expected.items() if getattr(entry, name) != value)
	if mismatched:
		logger.warning("Reference %s reused with different %s; rejecting", reference, ", ".join(mismatched))
		raise ReferenceReused(reference, mismatched=mismatched)


class LoyaltyServices:

	def __init__(self, policy: LoyaltyPolicy | None = None):
		self.policy = policy or LoyaltyPolicy.from_settings()

	# --- Lookups -------------------------------------------------------------

	@staticmethod
	def resolve_user_by_email(email: str) -> User:
		email = (email or "").strip().lower()
		try:
			validate_email(email)
		except ValidationError:
			raise InvalidInput("Valid email required", field="userEmail") from None
		user = User.objects.filter(email__iexact=email).first()
		if user is None:
			raise UserNotFound(email)
		return user

	@staticmethod
	def resolve_user(user_id) -> User:
		try:
			return User.objects.get(pk=user_id)
		except (User.DoesNotExist, ValidationError, ValueError):
			raise UserNotFound(user_id) from None

	@staticmethod
	def get_merchant(merchant_id) -> Merchant | None:
		try:
			return Merchant.objects.filter(pk=merchant_id).first()
		except (ValidationError, ValueError):
			return None

	# --- Provisioning / access -------------------------------------------------

	def provision(self, merchant_id, plan: ProvisioningPlan | str):
		"""
		Explicitly enroll a merchant on a plan. Returns the existing config if any.
		"""
		if isinstance(plan, str):
			plan = get_plan(plan)
		if self.get_merchant(merchant_id) is None:
			raise AccessDenied("Unknown merchant", merchant_id=str(merchant_id))

		existing = MerchantConfigStore.get(merchant_id)
		if existing is not None:
			return existing
		try:
			with transaction.atomic():
				return MerchantConfigStore.create(merchant_id, plan)
		except IntegrityError:
			# Provisioned by a concurrent request
			return MerchantConfigStore.get(merchant_id)

	def authorize_merchant(self, merchant_id) -> Merchant:
		"""
		Access gate for business endpoints: merchant must exist and be ACTIVE.

		When the auto-provision policy is on, a merchant with no config gets one
		here. issue/redeem themselves never provision.
		"""
		merchant = self.get_merchant(merchant_id)
		if merchant is None or merchant.status != MerchantStatus.ACTIVE:
			raise AccessDenied(
				"Active business account required for loyalty features",
				merchant_id=str(merchant_id),
			)
		if self.policy.auto_provision_plan and MerchantConfigStore.get(merchant.id) is None:
			self.provision(merchant.id, self.policy.auto_provision_plan)
			logger.info("Auto-provisioned merchant %s on %s", merchant.id, self.policy.auto_provision_plan)
		return merchant

	# --- Retry loop -------------------------------------------------------------

	def _run(self, operation: str, attempt, replay=None):
		"""
		Run one atomic attempt, retrying on concurrency conflicts.

		`replay` is called after a unique-constraint violation; if it finds the
		already-applied entry its receipt is returned instead of failing.
		"""
		attempts = self.policy.max_conflict_retries + 1
		for n in range(1, attempts + 1):
			if n > 1:
				self._backoff(n - 1)
			try:
				return attempt()
			except Conflict as exc:
				logger.warning("%s attempt %d/%d lost a race: %s", operation, n, attempts, exc.message)
			except OperationalError as exc:
				if not _is_lock_error(exc):
					raise
				logger.warning("%s attempt %d/%d hit a lock: %s", operation, n, attempts, exc)
			except IntegrityError:
				prior = replay() if replay else None
				if prior is None:
					raise
				logger.warning("%s duplicate reference raced; returning prior receipt", operation)
				return prior
			except LoyaltyError as exc:
				logger.warning("%s rejected: %s %s", operation, exc.code, exc.context)
				raise
		raise Conflict(f"{operation} could not be applied after {attempts} attempts; please retry", attempts=attempts)

	def _backoff(self, retry: int):
		# Exponential, full jitter
		base = self.policy.retry_backoff_seconds
		if base > 0:
			time.sleep(random.uniform(0, base * (2 ** (retry - 1))))

	# --- Issuance (mint) -------------------------------------------------------

	def issue(self, user_email: str, merchant_id, bill_amount_cents: int, reference: str | None = None) -> IssueReceipt:
		"""
		Mint points for a bill at merchant_id into the wallet of the user with user_email.
		"""
		_require_positive_int("billAmountCents", bill_amount_cents)
		reference = _clean_reference(reference)
		user = self.resolve_user_by_email(user_email)
		if self.get_merchant(merchant_id) is None:
			raise MerchantNotParticipating(merchant_id)

		def replay():
			if not reference:
				return None
			entry = Ledger.find_by_reference(merchant_id, LedgerEntryType.MINT, reference)
			if entry is None:
				return None
			_check_same_transaction(entry, reference, user_id=user.id, cents_value=bill_amount_cents)
			return self._issue_receipt_from_entry(entry)

		prior = replay()
		if prior is not None:
			logger.warning("Issuance %s at merchant %s already applied; replaying", reference, merchant_id)
			return prior

		return self._run(
			"issue",
			lambda: self._issue_once(user, merchant_id, bill_amount_cents, reference),
			replay=replay,
		)

	def _issue_once(self, user: User, merchant_id, bill_amount_cents: int, reference: str | None) -> IssueReceipt:
		with transaction.atomic():
			config = MerchantConfigStore.lock(merchant_id)
			if config is None:
				raise MerchantNotParticipating(merchant_id)

			rate = config.issue_rate_per_dollar
			points = self.policy.points_for_bill(bill_amount_cents, rate)
			if points <= 0:
				raise AmountTooSmall(bill_amount_cents, rate)

			included, purchased = config.point_bank_included, config.point_bank_purchased
			total_bank = included + purchased
			if total_bank < points:
				raise InsufficientPointBank(requested=points, available=total_bank)

			allocation = self.policy.allocate(included, purchased, points)
			bill_dollars = self.policy.cents_to_dollars(bill_amount_cents)

			wallet = WalletStore.lock(user.id)
			earning = EarningsAggregator.get_or_create(user.id, merchant_id)

			entry = Ledger.append(
				user_id=user.id,
				merchant_id=merchant_id,
				type=LedgerEntryType.MINT,
				points=points,
				cents_value=bill_amount_cents,
				bucket_used=allocation.bucket_used,
				reference=reference,
				metadata={
					"userEmail": user.email,
					"billAmountCents": bill_amount_cents,
					"issueRate": rate,
					"issuedBy": config.merchant.business_name,
					"label": f"Bill ${bill_dollars:.2f}",
					"newIncluded": allocation.new_included,
					"newPurchased": allocation.new_purchased,
				},
			)

			# Dependent writes, in this order: bank, wallet, earnings
			MerchantConfigStore.update(
				config.id,
				{"point_bank_included": allocation.new_included, "point_bank_purchased": allocation.new_purchased},
				expected_version=config.version,
			)
			WalletStore.set_balance(wallet.id, wallet.total_points + points, expected_version=wallet.version)
			EarningsAggregator.set_total(earning.id, earning.total_earned + points, expected_version=earning.version)

		logger.info(
			"Issued %d points to user %s at merchant %s (%s; bank %d/%d)",
			points, user.id, merchant_id, allocation.bucket_used, allocation.new_included, allocation.new_purchased,
		)
		return IssueReceipt(
			points_issued=points,
			bill_dollars=bill_dollars,
			bucket_used=allocation.bucket_used,
			new_included=allocation.new_included,
			new_purchased=allocation.new_purchased,
			ledger_entry_id=entry.id,
			user_email=user.email,
			bill_amount_cents=bill_amount_cents,
		)

	def _issue_receipt_from_entry(self, entry: LedgerEntry) -> IssueReceipt:
		meta = entry.metadata or {}
		return IssueReceipt(
			points_issued=entry.points,
			bill_dollars=self.policy.cents_to_dollars(entry.cents_value or 0),
			bucket_used=entry.bucket_used,
			new_included=meta.get("newIncluded", 0),
			new_purchased=meta.get("newPurchased", 0),
			ledger_entry_id=entry.id,
			user_email=meta.get("userEmail", entry.user.email),
			bill_amount_cents=entry.cents_value or 0,
			replayed=True,
		)

	# --- Redemption (burn) -----------------------------------------------------

	def redeem(self, user_id, merchant_id, bill_amount_cents: int, points_to_redeem: int,
			reference: str | None = None) -> RedeemReceipt:
		"""
		Burn points from the user's pooled wallet as a discount on a bill at merchant_id.

		The merchant's point bank is not credited: a burn is a pure sink.
		"""
		_require_positive_int("billAmountCents", bill_amount_cents)
		_require_positive_int("pointsToRedeem", points_to_redeem)
		reference = _clean_reference(reference)

		if self.get_merchant(merchant_id) is None:
			raise MerchantNotFound(merchant_id)
		config = MerchantConfigStore.get(merchant_id)
		if config is None:
			raise MerchantNotParticipating(merchant_id)
		user = self.resolve_user(user_id)

		max_points = self.policy.max_redeemable_points(bill_amount_cents, config.redeem_cap_percentage)

		def replay():
			if not reference:
				return None
			entry = Ledger.find_by_reference(merchant_id, LedgerEntryType.BURN, reference)
			if entry is None:
				return None
			_check_same_transaction(
				entry, reference, user_id=user.id, points=points_to_redeem, cents_value=bill_amount_cents,
			)
			return self._redeem_receipt_from_entry(entry, max_points)

		prior = replay()
		if prior is not None:
			logger.warning("Redemption %s at merchant %s already applied; replaying", reference, merchant_id)
			return prior

		if points_to_redeem > max_points:
			logger.warning("redeem rejected: exceeds cap (%d > %d)", points_to_redeem, max_points)
			raise ExceedsRedemptionCap(points_to_redeem, max_points, config.redeem_cap_percentage)

		return self._run(
			"redeem",
			lambda: self._redeem_once(user, merchant_id, bill_amount_cents, points_to_redeem, max_points, reference),
			replay=replay,
		)

	def _redeem_once(self, user: User, merchant_id, bill_amount_cents: int, points: int,
			max_points: int, reference: str | None) -> RedeemReceipt:
		with transaction.atomic():
			wallet = WalletStore.lock(user.id)
			if wallet.total_points < points:
				raise InsufficientBalance(requested=points, available=wallet.total_points)

			new_balance = wallet.total_points - points
			entry = Ledger.append(
				user_id=user.id,
				merchant_id=merchant_id,
				type=LedgerEntryType.BURN,
				points=points,
				cents_value=bill_amount_cents,
				reference=reference,
				metadata={
					"billAmountCents": bill_amount_cents,
					"maxRedeemablePoints": max_points,
					"newWalletBalance": new_balance,
				},
			)
			WalletStore.set_balance(wallet.id, new_balance, expected_version=wallet.version)

		logger.info("Redeemed %d points from user %s at merchant %s", points, user.id, merchant_id)
		return RedeemReceipt(
			points_redeemed=points,
			cad_value=self.policy.points_to_currency(points),
			bill_dollars=self.policy.cents_to_dollars(bill_amount_cents),
			new_wallet_balance=new_balance,
			max_redeemable_points=max_points,
			ledger_entry_id=entry.id,
		)

	def _redeem_receipt_from_entry(self, entry: LedgerEntry, max_points: int) -> RedeemReceipt:
		meta = entry.metadata or {}
		return RedeemReceipt(
			points_redeemed=entry.points,
			cad_value=self.policy.points_to_currency(entry.points),
			bill_dollars=self.policy.cents_to_dollars(entry.cents_value or 0),
			new_wallet_balance=meta.get("newWalletBalance", 0),
			max_redeemable_points=meta.get("maxRedeemablePoints", max_points),
			ledger_entry_id=entry.id,
			replayed=True,
		)

	# --- Queries ---------------------------------------------------------------

	def get_wallet(self, user_id) -> dict:
		"""
		Balance with currency value and the per-merchant earnings breakdown
		"""
		user = self.resolve_user(user_id)
		wallet = WalletStore.get_or_create(user.id)
		earnings = EarningsAggregator.list_for_user(user.id)
		return {
			"walletId": str(wallet.id),
			"userId": str(user.id),
			"totalPoints": wallet.total_points,
			"cadValue": f"{self.policy.points_to_currency(wallet.total_points):.2f}",
			"currency": self.policy.currency,
			"updatedAt": wallet.updated_at.isoformat(),
			"merchantEarnings": [
				{
					"merchantId": str(e.merchant_id),
					"businessName": e.merchant.business_name,
					"totalEarned": e.total_earned,
					"cadValue": f"{self.policy.points_to_currency(e.total_earned):.2f}",
				}
				for e in earnings
			],
		}

	def list_transactions(self, user_id, limit: int = 50, offset: int = 0) -> list[dict]:
		limit = max(1, min(int(limit), self.policy.transactions_max_limit))
		offset = max(0, int(offset))
		rows = Ledger.list_for_user(user_id, limit, offset)
		return [
			{
				"id": r.id,
				"createdAt": r.created_at.isoformat(),
				"type": r.type,
				"points": r.points,
				"cadValue": f"{self.policy.cents_to_dollars(r.cents_value):.2f}" if r.cents_value else None,
				"businessName": r.merchant.business_name or "Unknown",
				"bucketUsed": r.bucket_used or None,
				"reference": r.reference,
			}
			for r in rows
		]

	def get_merchant_config(self, merchant_id) -> dict:
		merchant = self.authorize_merchant(merchant_id)
		config = MerchantConfigStore.get(merchant.id)
		if config is None:
			raise MerchantNotParticipating(merchant.id)
		return self._config_view(merchant, config)

	def update_merchant_config(self, merchant_id, issue_rate_per_dollar: int | None = None,
			redeem_cap_percentage: int | None = None) -> dict:
		"""
		Change the issuance rate and/or redemption cap (bank buckets are not editable here)
		"""
		partial = {}
		if issue_rate_per_dollar is not None:
			self._check_range("issueRatePerDollar", issue_rate_per_dollar, self.policy.issue_rate_range)
			partial["issue_rate_per_dollar"] = issue_rate_per_dollar
		if redeem_cap_percentage is not None:
			self._check_range("redeemCapPercentage", redeem_cap_percentage, self.policy.redeem_cap_range)
			partial["redeem_cap_percentage"] = redeem_cap_percentage

		merchant = self.authorize_merchant(merchant_id)

		def attempt():
			with transaction.atomic():
				config = MerchantConfigStore.lock(merchant.id)
				if config is None:
					raise MerchantNotParticipating(merchant.id)
				if not partial:
					return config
				return MerchantConfigStore.update(config.id, partial, expected_version=config.version)

		config = self._run("update_config", attempt)
		if partial:
			logger.info("Merchant %s updated loyalty config: %s", merchant.id, partial)
		return {
			"issueRatePerDollar": config.issue_rate_per_dollar,
			"redeemCapPercentage": config.redeem_cap_percentage,
		}

	def list_participating_merchants(self) -> list[dict]:
		return [
			{
				"id": str(c.merchant_id),
				"name": c.merchant.business_name or "Unknown Business",
				"redeemCapPercentage": c.redeem_cap_percentage,
			}
			for c in MerchantConfigStore.list_participating()
		]

	@staticmethod
	def _check_range(field: str, value, bounds: tuple[int, int]):
		low, high = bounds
		if isinstance(value, bool) or not isinstance(value, int) or not (low <= value <= high):
			raise InvalidRange(field, value, low, high)

	@staticmethod
	def _config_view(merchant: Merchant, config) -> dict:
		return {
			"merchantId": str(merchant.id),
			"businessName": merchant.business_name,
			"issueRatePerDollar": config.issue_rate_per_dollar,
			"redeemCapPercentage": config.redeem_cap_percentage,
			"pointBankIncluded": config.point_bank_included,
			"pointBankPurchased": config.point_bank_purchased,
			"totalPointBank": config.total_point_bank,
			"subscriptionTier": config.subscription_tier,
			"subscriptionStatus": config.subscription_status,
			"isBetaFree": config.subscription_status == SubscriptionStatus.BETA_FREE,
		}

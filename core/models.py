"""Database models for the loyalty points engine.


Tables:
- User: end-user identity (resolved by email at merchant checkout)
- Merchant: participating business (organizer) with display name and status
- MerchantLoyaltyConfig: issuance rate, redemption cap and the two-bucket point bank
- Wallet: per-user spendable points (cache of ledger aggregation)
- UserMerchantEarning: cumulative points a user earned at one merchant
- LedgerEntry: append-only mint/burn record, the audit trail and source of truth

Wallet, MerchantLoyaltyConfig and UserMerchantEarning carry a `version` column
bumped on every write so the stores can compare-and-swap.
"""

import uuid
from django.db import models
from django.db.models import F, Q

from .errors import LedgerImmutable


class User(models.Model):
	"""
	End user who earns and spends points
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	email = models.EmailField(unique=True)
	display_name = models.CharField(max_length=200, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return self.email


class MerchantStatus(models.TextChoices):
	ACTIVE = "active", "Active"
	PENDING = "pending", "Pending"
	SUSPENDED = "suspended", "Suspended"


class Merchant(models.Model):
	"""
	A business account. Only ACTIVE merchants may issue points or edit config.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	owner = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="merchants")
	business_name = models.CharField(max_length=200)
	status = models.CharField(max_length=16, choices=MerchantStatus.choices, default=MerchantStatus.PENDING)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return self.business_name


class SubscriptionStatus(models.TextChoices):
	BETA_FREE = "beta-free", "Beta (free)"
	ACTIVE = "active", "Active"
	PAST_DUE = "past-due", "Past due"
	CANCELED = "canceled", "Canceled"


# Statuses under which a merchant accepts redemptions
PARTICIPATING_STATUSES = (SubscriptionStatus.BETA_FREE, SubscriptionStatus.ACTIVE)


class MerchantLoyaltyConfig(models.Model):
	"""
	Per-merchant loyalty settings and point bank.

	point_bank_included is the plan allowance, point_bank_purchased the paid
	top-ups. Only their sum is constrained to stay non-negative.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	merchant = models.OneToOneField(Merchant, on_delete=models.CASCADE, related_name="loyalty_config")
	issue_rate_per_dollar = models.PositiveSmallIntegerField(default=50)
	redeem_cap_percentage = models.PositiveSmallIntegerField(default=20)
	point_bank_included = models.BigIntegerField(default=0)
	point_bank_purchased = models.BigIntegerField(default=0)
	subscription_tier = models.CharField(max_length=32, default="starter")
	subscription_status = models.CharField(max_length=16, choices=SubscriptionStatus.choices, default=SubscriptionStatus.BETA_FREE)
	version = models.PositiveIntegerField(default=0)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		constraints = [
			models.CheckConstraint(
				condition=Q(point_bank_included__gte=-F("point_bank_purchased")),
				name="loyalty_config_bank_non_negative",
			),
		]

	@property
	def total_point_bank(self) -> int:
		return self.point_bank_included + self.point_bank_purchased


class Wallet(models.Model):
	"""
	One per user: total points available for redemption anywhere
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="wallet")
	total_points = models.BigIntegerField(default=0)
	version = models.PositiveIntegerField(default=0)
	metadata = models.JSONField(default=dict, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		constraints = [
			models.CheckConstraint(condition=Q(total_points__gte=0), name="wallet_total_points_non_negative"),
		]


class UserMerchantEarning(models.Model):
	"""
	Cumulative points a user has earned at one merchant. Never decremented.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="merchant_earnings")
	merchant = models.ForeignKey(Merchant, on_delete=models.CASCADE, related_name="user_earnings")
	total_earned = models.BigIntegerField(default=0)
	version = models.PositiveIntegerField(default=0)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		constraints = [
			models.UniqueConstraint(fields=["user", "merchant"], name="user_merchant_earning_unique"),
			models.CheckConstraint(condition=Q(total_earned__gte=0), name="user_merchant_earning_non_negative"),
		]


class LedgerEntryType(models.TextChoices):
	MINT = "mint", "Mint"
	BURN = "burn", "Burn"


class BucketUsed(models.TextChoices):
	INCLUDED = "Included", "Included"
	MIXED = "Mixed", "Mixed"


class LedgerEntry(models.Model):
	"""
	Immutable record of one mint or burn.

	points is always positive; the direction comes from type.
	(merchant, type, reference) is unique when reference is set: it is the
	idempotency key for client retries.
	"""
	id = models.BigAutoField(primary_key=True)
	created_at = models.DateTimeField(auto_now_add=True)
	type = models.CharField(max_length=8, choices=LedgerEntryType.choices)
	user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="ledger_entries")
	merchant = models.ForeignKey(Merchant, on_delete=models.PROTECT, related_name="ledger_entries")
	points = models.BigIntegerField()
	cents_value = models.BigIntegerField(null=True, blank=True)
	bucket_used = models.CharField(max_length=16, choices=BucketUsed.choices, blank=True, default="")
	reference = models.CharField(max_length=255, null=True, blank=True)
	reversed_of = models.ForeignKey("self", null=True, blank=True, on_delete=models.PROTECT, related_name="reversals")
	metadata = models.JSONField(default=dict, blank=True)

	class Meta:
		ordering = ["-created_at", "-id"]
		constraints = [
			models.CheckConstraint(condition=Q(points__gt=0), name="ledger_points_positive"),
			models.UniqueConstraint(
				fields=["merchant", "type", "reference"],
				condition=Q(reference__isnull=False),
				name="ledger_unique_merchant_reference",
			),
		]
		indexes = [
			models.Index(fields=["user", "-created_at"], name="ledger_user_created_idx"),
		]

	def save(self, *args, **kwargs):
		if not self._state.adding:
			raise LedgerImmutable(f"Ledger entry {self.pk} is immutable")
		super().save(*args, **kwargs)

	def delete(self, *args, **kwargs):
		raise LedgerImmutable(f"Ledger entry {self.pk} cannot be deleted")

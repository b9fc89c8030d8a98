"""Point arithmetic and program policy shared across the engine.


- POINTS_PER_DOLLAR is the single exchange rate (1000 points = 1.00 currency unit).
- LoyaltyPolicy bundles the rate with the config bounds, retry bound and the
  bucket allocation order; it is injected into LoyaltyServices.
- PLANS holds the provisioning plans a merchant config can be created from.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN

from django.conf import settings

from .errors import InvalidInput
from .models import BucketUsed

POINTS_PER_DOLLAR = getattr(settings, "LOYALTY_POINTS_PER_DOLLAR", 1000)
CENTS_PER_DOLLAR = 100
PERCENT = 100


@dataclass(frozen=True)
class ProvisioningPlan:
	name: str
	included_points: int
	subscription_tier: str
	subscription_status: str
	issue_rate_per_dollar: int = 50
	redeem_cap_percentage: int = 20


PLANS = {
	# Promotional allowance handed to merchants during the free beta
	"beta-free": ProvisioningPlan("beta-free", 20000, "starter", "beta-free"),
	"starter": ProvisioningPlan("starter", 20000, "starter", "active"),
}


def get_plan(name: str) -> ProvisioningPlan:
	try:
		return PLANS[name]
	except KeyError:
		raise InvalidInput(f"Unknown provisioning plan: {name}", plan=name) from None


@dataclass(frozen=True)
class BankAllocation:
	"""Result of drawing points from a merchant's two-bucket bank."""
	new_included: int
	new_purchased: int
	bucket_used: str


@dataclass(frozen=True)
class LoyaltyPolicy:
	points_per_dollar: int = POINTS_PER_DOLLAR
	currency: str = "CAD"
	issue_rate_range: tuple[int, int] = (0, 150)
	redeem_cap_range: tuple[int, int] = (0, 50)
	max_conflict_retries: int = 3
	retry_backoff_seconds: float = 0.05
	transactions_max_limit: int = 100
	auto_provision_plan: str | None = "beta-free"

	@classmethod
	def from_settings(cls) -> "LoyaltyPolicy":
		return cls(
			points_per_dollar=getattr(settings, "LOYALTY_POINTS_PER_DOLLAR", POINTS_PER_DOLLAR),
			currency=getattr(settings, "LOYALTY_CURRENCY", "CAD"),
			issue_rate_range=tuple(getattr(settings, "LOYALTY_ISSUE_RATE_RANGE", (0, 150))),
			redeem_cap_range=tuple(getattr(settings, "LOYALTY_REDEEM_CAP_RANGE", (0, 50))),
			max_conflict_retries=getattr(settings, "LOYALTY_MAX_CONFLICT_RETRIES", 3),
			retry_backoff_seconds=getattr(settings, "LOYALTY_RETRY_BACKOFF_SECONDS", 0.05),
			transactions_max_limit=getattr(settings, "LOYALTY_TRANSACTIONS_MAX_LIMIT", 100),
			auto_provision_plan=getattr(settings, "LOYALTY_AUTO_PROVISION_PLAN", "beta-free"),
		)

	def points_for_bill(self, bill_amount_cents: int, issue_rate_per_dollar: int) -> int:
		"""
		floor(bill dollars * rate), computed on integer cents to avoid float drift
		"""
		return (bill_amount_cents * issue_rate_per_dollar) // CENTS_PER_DOLLAR

	def max_redeemable_points(self, bill_amount_cents: int, redeem_cap_percentage: int) -> int:
		"""
		Points worth redeem_cap_percentage of the bill at the fixed exchange rate
		"""
		return (bill_amount_cents * redeem_cap_percentage * self.points_per_dollar) // (CENTS_PER_DOLLAR * PERCENT)

	def points_to_currency(self, points: int) -> Decimal:
		"""
		Convert a point quantity to a 2-decimal currency amount
		"""
		return (Decimal(points) / Decimal(self.points_per_dollar)).quantize(Decimal("0.01"), rounding=ROUND_DOWN)

	@staticmethod
	def cents_to_dollars(cents: int) -> Decimal:
		return (Decimal(cents) / Decimal(CENTS_PER_DOLLAR)).quantize(Decimal("0.01"))

	@staticmethod
	def allocate(included: int, purchased: int, points: int) -> BankAllocation:
		"""
		Included (plan allowance) is consumed before purchased top-ups.

		Caller must have checked included + purchased >= points.
		"""
		if included >= points:
			return BankAllocation(included - points, purchased, BucketUsed.INCLUDED)
		remaining = points - included
		return BankAllocation(0, purchased - remaining, BucketUsed.MIXED)

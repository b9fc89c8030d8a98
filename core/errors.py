"""Typed failures raised by the loyalty engine.

Every error carries a stable `code`, an HTTP `status` for the API layer and a
`context` dict with the numbers the caller needs to act (requested vs available).
"""


class LoyaltyError(Exception):
	"""Base exception for all loyalty engine errors."""

	code = "loyalty_error"
	status = 400

	def __init__(self, message: str, **context):
		super().__init__(message)
		self.message = message
		self.context = context

	def as_dict(self) -> dict:
		return {"code": self.code, "message": self.message, "context": self.context}


# --- Validation --------------------------------------------------------------

class InvalidInput(LoyaltyError):
	"""Raised when a request field is missing or has the wrong shape."""

	code = "invalid_input"


class InvalidRange(InvalidInput):
	"""Raised when a config value falls outside its allowed bounds."""

	code = "invalid_range"

	def __init__(self, field: str, value, minimum: int, maximum: int):
		super().__init__(
			f"{field} must be between {minimum} and {maximum}, got {value}",
			field=field, value=value, minimum=minimum, maximum=maximum,
		)


# --- Access / not found ------------------------------------------------------

class AuthenticationRequired(LoyaltyError):
	code = "authentication_required"
	status = 401


class AccessDenied(LoyaltyError):
	"""Raised when the caller is not an active, authorized merchant."""

	code = "access_denied"
	status = 403


class NotFound(LoyaltyError):
	"""Raised when a store row disappeared between read and write."""

	code = "not_found"
	status = 404


class UserNotFound(NotFound):
	code = "user_not_found"

	def __init__(self, lookup):
		super().__init__(f"User not found: {lookup}", lookup=str(lookup))


class MerchantNotFound(NotFound):
	code = "merchant_not_found"

	def __init__(self, merchant_id):
		super().__init__("Business not found", merchant_id=str(merchant_id))


class MerchantNotParticipating(NotFound):
	"""A merchant without a loyalty config has opted out of the program."""

	code = "merchant_not_participating"
	status = 403

	def __init__(self, merchant_id):
		super().__init__(
			"This business does not accept loyalty point redemptions",
			merchant_id=str(merchant_id),
		)


# --- Business rules ----------------------------------------------------------

class BusinessRuleViolation(LoyaltyError):
	status = 422


class AmountTooSmall(BusinessRuleViolation):
	code = "amount_too_small"

	def __init__(self, bill_amount_cents: int, issue_rate_per_dollar: int):
		super().__init__(
			"Bill amount too small to issue points",
			bill_amount_cents=bill_amount_cents, issue_rate_per_dollar=issue_rate_per_dollar,
		)


class InsufficientPointBank(BusinessRuleViolation):
	code = "insufficient_point_bank"

	def __init__(self, requested: int, available: int):
		super().__init__(
			f"Insufficient point bank. Need {requested} points, have {available} points",
			requested=requested, available=available, shortfall=requested - available,
		)


class ExceedsRedemptionCap(BusinessRuleViolation):
	code = "exceeds_redemption_cap"

	def __init__(self, requested: int, max_redeemable: int, redeem_cap_percentage: int):
		super().__init__(
			f"Cannot redeem {requested} points; this bill allows at most {max_redeemable} "
			f"({redeem_cap_percentage}% cap)",
			requested=requested, max_redeemable=max_redeemable,
			redeem_cap_percentage=redeem_cap_percentage,
		)


class InsufficientBalance(BusinessRuleViolation):
	code = "insufficient_balance"

	def __init__(self, requested: int, available: int):
		super().__init__(
			f"Insufficient balance. Need {requested} points, have {available} points",
			requested=requested, available=available, shortfall=requested - available,
		)


# --- Concurrency / integrity -------------------------------------------------

class Conflict(LoyaltyError):
	"""Raised when a concurrent write keeps winning after the bounded retries."""

	code = "conflict"
	status = 409


class LedgerImmutable(LoyaltyError):
	code = "ledger_immutable"
	status = 409


class ReferenceReused(LoyaltyError):
	"""
	An idempotency reference already names a different transaction
	(another user, or other amounts). Never retried.
	"""

	code = "reference_reused"
	status = 409

	def __init__(self, reference: str, **context):
		super().__init__(
			"reference already used for a different transaction",
			field="reference", reference=reference, **context,
		)

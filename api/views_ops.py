"""Operational endpoints that move points (issue/redeem) or change merchant config."""

from django.http import JsonResponse

from core.errors import InvalidInput
from core.services import LoyaltyServices
from .helpers import json_body, int_field, loyalty_endpoint, request_merchant_id, request_user_id
from .views_read import read_business_config


def health(request):
	return JsonResponse({"ok": True})


@loyalty_endpoint("POST")
def issue(request):
	"""
	POST: Merchant issues (mints) points to a customer for a bill

	Body: {"userEmail": "...", "billAmountCents": 2000, "reference": "R-1"?}
	Idempotency-Key header is used as reference when the body has none.
	"""
	services = LoyaltyServices()
	merchant = services.authorize_merchant(request_merchant_id(request))

	body = json_body(request)
	user_email = body.get("userEmail")
	if not isinstance(user_email, str) or not user_email:
		raise InvalidInput("userEmail required", field="userEmail")
	bill_amount_cents = int_field(body, "billAmountCents")
	reference = body.get("reference") or request.headers.get("Idempotency-Key")

	receipt = services.issue(user_email, merchant.id, bill_amount_cents, reference)

	return JsonResponse({
		"ok": True,
		"transaction": {
			"userEmail": receipt.user_email,
			"billAmountCents": receipt.bill_amount_cents,
			"cadValue": f"{receipt.bill_dollars:.2f}",
			**receipt.as_dict(),
		},
	}, status=200 if receipt.replayed else 201)


@loyalty_endpoint("POST")
def redeem(request):
	"""
	POST: User redeems (burns) points at a business for a discount on a bill

	Body: {"businessId": "...", "billAmountCents": 5000, "pointsToRedeem": 1000, "reference": "..."?}
	"""
	user_id = request_user_id(request)
	body = json_body(request)
	business_id = body.get("businessId")
	if not business_id:
		raise InvalidInput("businessId required", field="businessId")
	bill_amount_cents = int_field(body, "billAmountCents")
	points_to_redeem = int_field(body, "pointsToRedeem")
	reference = body.get("reference") or request.headers.get("Idempotency-Key")

	services = LoyaltyServices()
	receipt = services.redeem(user_id, business_id, bill_amount_cents, points_to_redeem, reference)
	merchant = services.get_merchant(business_id)

	return JsonResponse({
		"ok": True,
		"transaction": {
			"billAmountCents": bill_amount_cents,
			"businessName": merchant.business_name,
			**receipt.as_dict(),
		},
	}, status=200 if receipt.replayed else 201)


@loyalty_endpoint("GET", "PATCH")
def business_config(request):
	"""
	GET: Merchant's loyalty configuration and point bank status
	PATCH: Update issueRatePerDollar and/or redeemCapPercentage
	"""
	if request.method == "GET":
		return read_business_config(request)

	body = json_body(request)
	updated = LoyaltyServices().update_merchant_config(
		request_merchant_id(request),
		issue_rate_per_dollar=int_field(body, "issueRatePerDollar", required=False),
		redeem_cap_percentage=int_field(body, "redeemCapPercentage", required=False),
	)
	return JsonResponse({"ok": True, "config": updated})

"""Read-only endpoints: wallet, history, merchant config, participating businesses."""

from django.http import JsonResponse

from core.services import LoyaltyServices
from .helpers import loyalty_endpoint, query_int, request_merchant_id, request_user_id


@loyalty_endpoint("GET")
def wallet(request):
	"""
	GET: Authenticated user's balance, its currency value and per-merchant earnings
	"""
	data = LoyaltyServices().get_wallet(request_user_id(request))
	return JsonResponse({"ok": True, "data": data})


@loyalty_endpoint("GET")
def transactions(request):
	"""
	GET: User's ledger history, most recent first (?limit=50&offset=0, limit <= 100)
	"""
	user_id = request_user_id(request)
	rows = LoyaltyServices().list_transactions(
		user_id,
		limit=query_int(request, "limit", 50),
		offset=query_int(request, "offset", 0),
	)
	return JsonResponse({"ok": True, "transactions": rows})


@loyalty_endpoint("GET")
def participating_businesses(request):
	"""
	GET: Businesses currently accepting point redemptions
	"""
	return JsonResponse({"ok": True, "businesses": LoyaltyServices().list_participating_merchants()})


def read_business_config(request):
	config = LoyaltyServices().get_merchant_config(request_merchant_id(request))
	return JsonResponse({"ok": True, "config": config})

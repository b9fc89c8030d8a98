"""Request parsing and error translation shared by the loyalty views."""

import functools
import json
import logging

from django.db import DatabaseError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from core.errors import AuthenticationRequired, AccessDenied, InvalidInput, LoyaltyError

logger = logging.getLogger(__name__)


def error_response(exc: LoyaltyError) -> JsonResponse:
	return JsonResponse({"ok": False, "error": exc.as_dict()}, status=exc.status)


def loyalty_endpoint(*methods):
	"""
	Restrict HTTP methods and turn engine errors into JSON responses.

	Typed LoyaltyErrors keep their code/context; database failures are logged
	with traceback and reported generically.
	"""
	def decorator(view):
		@csrf_exempt
		@functools.wraps(view)
		def wrapper(request, *args, **kwargs):
			if request.method not in methods:
				return JsonResponse(
					{"ok": False, "error": {"code": "method_not_allowed", "message": f"{' or '.join(methods)} only"}},
					status=405,
				)
			try:
				return view(request, *args, **kwargs)
			except LoyaltyError as exc:
				return error_response(exc)
			except DatabaseError:
				# Don't leak store internals to the caller
				logger.exception("Store failure in %s %s", request.method, request.path)
				return JsonResponse(
					{"ok": False, "error": {"code": "unavailable", "message": "Loyalty service temporarily unavailable"}},
					status=503,
				)
		return wrapper
	return decorator


def json_body(request) -> dict:
	try:
		body = json.loads(request.body or b"{}")
	except (ValueError, UnicodeDecodeError):
		raise InvalidInput("Invalid JSON body") from None
	if not isinstance(body, dict):
		raise InvalidInput("JSON body must be an object")
	return body


def int_field(body: dict, name: str, required: bool = True) -> int | None:
	value = body.get(name)
	if value is None:
		if required:
			raise InvalidInput(f"{name} required", field=name)
		return None
	if isinstance(value, bool) or not isinstance(value, int):
		raise InvalidInput(f"{name} must be an integer", field=name, value=value)
	return value


def query_int(request, name: str, default: int) -> int:
	raw = request.GET.get(name)
	if raw in (None, ""):
		return default
	try:
		return int(raw)
	except ValueError:
		raise InvalidInput(f"{name} must be an integer", field=name, value=raw) from None


def request_user_id(request) -> str:
	"""
	Opaque end-user id supplied by the upstream auth layer
	"""
	user_id = request.headers.get("X-User-Id")
	if not user_id:
		raise AuthenticationRequired("Authentication required")
	return user_id


def request_merchant_id(request) -> str:
	"""
	Opaque, already-authorized merchant id supplied by the upstream auth layer
	"""
	merchant_id = request.headers.get("X-Merchant-Id")
	if not merchant_id:
		raise AccessDenied("Active business account required for loyalty features")
	return merchant_id

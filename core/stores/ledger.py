"""Append-only ledger of mint/burn facts.

Entries are never updated or deleted. Wallet and earnings rows are caches of
the aggregates computed here.
"""

from django.db.models import Q, Sum

from core.errors import InvalidInput
from core.models import LedgerEntry, LedgerEntryType


class Ledger:

	@staticmethod
	def append(*, user_id, merchant_id, type: str, points: int, cents_value: int | None = None,
			bucket_used: str = "", reference: str | None = None, metadata: dict | None = None) -> LedgerEntry:
		"""
		Durable insert. Business validation is the caller's job and must happen first.
		"""
		if type not in LedgerEntryType.values:
			raise InvalidInput(f"Ledger entry type must be mint or burn, got {type!r}", type=type)
		if not isinstance(points, int) or points <= 0:
			raise InvalidInput("Ledger entry points must be a positive integer", points=points)

		return LedgerEntry.objects.create(
			user_id=user_id,
			merchant_id=merchant_id,
			type=type,
			points=points,
			cents_value=cents_value,
			bucket_used=bucket_used,
			reference=reference,
			metadata=metadata or {},
		)

	@staticmethod
	def find_by_reference(merchant_id, type: str, reference: str) -> LedgerEntry | None:
		return LedgerEntry.objects.filter(merchant_id=merchant_id, type=type, reference=reference).first()

	@staticmethod
	def list_for_user(user_id, limit: int, offset: int):
		"""
		Most recent first, with the merchant joined for its display name.
		Returns a lazy sliced queryset.
		"""
		qs = (
			LedgerEntry.objects
			.select_related("merchant")
			.filter(user_id=user_id)
			.order_by("-created_at", "-id")
		)
		return qs[offset:offset + limit]

	@staticmethod
	def rebuild_wallet_total(user_id) -> int:
		"""
		Spendable points as the ledger sees them: all mints minus all burns
		"""
		totals = LedgerEntry.objects.filter(user_id=user_id).aggregate(
			minted=Sum("points", filter=Q(type=LedgerEntryType.MINT)),
			burned=Sum("points", filter=Q(type=LedgerEntryType.BURN)),
		)
		return (totals["minted"] or 0) - (totals["burned"] or 0)

	@staticmethod
	def rebuild_earned(user_id, merchant_id) -> int:
		total = LedgerEntry.objects.filter(
			user_id=user_id, merchant_id=merchant_id, type=LedgerEntryType.MINT,
		).aggregate(s=Sum("points"))["s"]
		return total or 0

	@staticmethod
	def minted_by_merchant(merchant_id) -> int:
		total = LedgerEntry.objects.filter(
			merchant_id=merchant_id, type=LedgerEntryType.MINT,
		).aggregate(s=Sum("points"))["s"]
		return total or 0

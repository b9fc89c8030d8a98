"""Versioned row writes shared by the stores.

Every mutable loyalty row carries a `version` column. A write that names an
expected version only lands if nobody else wrote the row since it was read.
"""

import logging

from django.db.models import F
from django.utils import timezone

from core.errors import Conflict, NotFound

logger = logging.getLogger(__name__)


def compare_and_set(model, pk, expected_version: int | None = None, **fields):
	"""
	UPDATE ... SET fields, version = version + 1 WHERE pk = pk [AND version = expected]

	Raises NotFound if the row is gone, Conflict if the version moved.
	Returns the refreshed instance.
	"""
	qs = model.objects.filter(pk=pk)
	if expected_version is not None:
		qs = qs.filter(version=expected_version)

	# .update() skips auto_now, so stamp updated_at by hand
	updated = qs.update(version=F("version") + 1, updated_at=timezone.now(), **fields)
	if updated:
		return model.objects.get(pk=pk)

	if expected_version is not None and model.objects.filter(pk=pk).exists():
		logger.warning("Version conflict on %s %s (expected v%s)", model.__name__, pk, expected_version)
		raise Conflict(
			f"{model.__name__} {pk} was modified concurrently",
			model=model.__name__, pk=str(pk), expected_version=expected_version,
		)
	raise NotFound(f"{model.__name__} {pk} no longer exists", model=model.__name__, pk=str(pk))

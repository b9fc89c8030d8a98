"""Public API surface for the loyalty engine.

- /wallet, /transactions, /redeem: user-facing (X-User-Id)
- /participating-businesses: public list of merchants accepting redemptions
- /business/*: merchant-facing issue and config (X-Merchant-Id)
"""

from django.urls import path
from .views_ops import health, issue, redeem, business_config
from .views_read import wallet, transactions, participating_businesses


urlpatterns = [
	path("health", health),
	path("wallet", wallet),
	path("transactions", transactions),
	path("participating-businesses", participating_businesses),
	path("redeem", redeem),
	path("business/config", business_config),
	path("business/issue", issue),
]

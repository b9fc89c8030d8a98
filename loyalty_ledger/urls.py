"""URL routing for the loyalty API.


The /api/loyalty/ namespace exposes wallet, history, redemption and the
business-facing issue/config endpoints.
"""

from django.urls import path, include


urlpatterns = [
	path("api/loyalty/", include("api.urls")),
]

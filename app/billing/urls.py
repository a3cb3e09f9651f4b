"""
URL configuration for the billing app.

Routes:
    - POST /webhooks/stripe/ - Stripe webhook endpoint
    - POST /cron/<job>/      - Shared-secret triggers for scheduled passes

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.
"""

from django.urls import include, path

from billing.webhooks.views import stripe_webhook

app_name = "billing"

urlpatterns = [
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("cron/", include("billing.cron.urls")),
]

"""
URL configuration for the billing back office.

URL Structure:
    /admin/                                - Django admin interface
    /health/                               - Health check endpoint
    /api/v1/billing/                       - Billing endpoints
        webhooks/stripe/                   - Stripe webhook endpoint (POST)
        cron/apply-pauses/                 - Month-end pause apply (POST)
        cron/resume-pauses/                - Resume ended pauses (POST)
        cron/verify-pauses/                - Re-check applied pauses (POST)
        cron/backstop-pauses/              - Month-start backstop (POST)
        cron/apply-pause-credits/          - Daily date-range pauses (POST)
        cron/reconcile-subscriptions/      - Reconcile against Stripe (POST)
        cron/recover-paid-invoices/        - Recover paid FAILED payments (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("billing/", include("billing.urls")),
]

urlpatterns = [
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Billing Admin"
admin.site.site_title = "Billing Admin"
admin.site.index_title = "Subscriptions, pauses and payments"

"""
URL configuration for the cron trigger endpoints.

Included under /api/v1/billing/cron/ by billing.urls.
"""

from django.urls import path

from billing.cron import views

urlpatterns = [
    path("apply-pauses/", views.ApplyPausesView.as_view(), name="cron_apply_pauses"),
    path("resume-pauses/", views.ResumePausesView.as_view(), name="cron_resume_pauses"),
    path("verify-pauses/", views.VerifyPausesView.as_view(), name="cron_verify_pauses"),
    path("backstop-pauses/", views.BackstopPausesView.as_view(), name="cron_backstop_pauses"),
    path(
        "apply-pause-credits/",
        views.ApplyPauseCreditsView.as_view(),
        name="cron_apply_pause_credits",
    ),
    path(
        "reconcile-subscriptions/",
        views.ReconcileSubscriptionsView.as_view(),
        name="cron_reconcile_subscriptions",
    ),
    path(
        "recover-paid-invoices/",
        views.RecoverPaidInvoicesView.as_view(),
        name="cron_recover_paid_invoices",
    ),
]

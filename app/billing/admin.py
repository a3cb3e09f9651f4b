"""
Billing admin configuration.

Models are exposed read-mostly: status changes go through the service
layer (AdminBillingActions), not the admin forms.
"""

from django.contrib import admin

from billing.models import (
    AuditLogEntry,
    Invoice,
    Membership,
    PauseWindow,
    Payment,
    ReconciliationRun,
    Subscription,
    WebhookEvent,
)

__all__ = [
    "AuditLogEntryAdmin",
    "InvoiceAdmin",
    "MembershipAdmin",
    "PauseWindowAdmin",
    "PaymentAdmin",
    "ReconciliationRunAdmin",
    "SubscriptionAdmin",
    "WebhookEventAdmin",
]


class MembershipInline(admin.StackedInline):
    model = Membership
    extra = 0
    readonly_fields = ["status"]


class PauseWindowInline(admin.TabularInline):
    model = PauseWindow
    extra = 0
    fields = ["kind", "year", "month", "start_date", "end_date", "status", "behavior", "credit_cents"]
    readonly_fields = fields
    show_change_link = True


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Local mirror of Stripe subscriptions."""

    list_display = [
        "id",
        "owner",
        "status",
        "stripe_account_key",
        "stripe_subscription_id",
        "monthly_price_cents",
        "next_billing_date",
        "updated_at",
    ]
    list_filter = ["status", "stripe_account_key", "cancel_at_period_end"]
    search_fields = ["id", "stripe_subscription_id", "stripe_customer_id", "owner__email"]
    readonly_fields = ["id", "status", "cancelled_at", "created_at", "updated_at"]
    ordering = ["-created_at"]
    inlines = [MembershipInline, PauseWindowInline]

    fieldsets = (
        (None, {"fields": ("id", "owner", "status")}),
        (
            "Stripe",
            {"fields": ("stripe_account_key", "stripe_subscription_id", "stripe_customer_id")},
        ),
        (
            "Billing",
            {
                "fields": (
                    "monthly_price_cents",
                    "currency",
                    "current_period_start",
                    "current_period_end",
                    "next_billing_date",
                    "cancel_at_period_end",
                    "cancelled_at",
                ),
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )


@admin.register(PauseWindow)
class PauseWindowAdmin(admin.ModelAdmin):
    """
    Pause windows. Scheduling and cancelling go through the services so
    Stripe and the audit trail stay in step.
    """

    list_display = ["id", "subscription", "kind", "__str__", "status", "behavior", "credit_cents"]
    list_filter = ["status", "kind", "behavior"]
    search_fields = ["id", "subscription__id", "subscription__stripe_subscription_id"]
    readonly_fields = [
        "id",
        "status",
        "applied_pause_at",
        "applied_resume_at",
        "credit_applied_at",
        "cancelled_at",
        "stripe_invoice_item_id",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ["id", "owner", "amount_cents", "currency", "status", "stripe_invoice_id", "created_at"]
    list_filter = ["status", "currency"]
    search_fields = ["id", "stripe_invoice_id", "stripe_payment_intent_id", "owner__email"]
    readonly_fields = ["id", "created_at", "updated_at", "processed_at", "failed_at", "operation_id"]
    ordering = ["-created_at"]


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ["id", "subscription", "stripe_invoice_id", "amount_cents", "status", "paid_at"]
    list_filter = ["status"]
    search_fields = ["stripe_invoice_id"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(AuditLogEntry)
class AuditLogEntryAdmin(admin.ModelAdmin):
    """Append-only: no add, change or delete."""

    list_display = ["created_at", "subscription", "action", "performed_by", "reason"]
    list_filter = ["action"]
    search_fields = ["subscription__id", "operation_id", "performed_by"]
    readonly_fields = ["subscription", "action", "operation_id", "performed_by", "reason", "payload", "created_at"]
    ordering = ["-created_at"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ["stripe_event_id", "event_type", "stripe_account_key", "status", "retry_count", "created_at"]
    list_filter = ["status", "event_type", "stripe_account_key"]
    search_fields = ["stripe_event_id"]
    readonly_fields = ["id", "stripe_event_id", "payload", "processed_at", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(ReconciliationRun)
class ReconciliationRunAdmin(admin.ModelAdmin):
    list_display = ["started_at", "stripe_account_key", "status", "checked", "fixed", "correct", "errors", "skipped"]
    list_filter = ["status", "stripe_account_key"]
    readonly_fields = [
        "id",
        "started_at",
        "completed_at",
        "checked",
        "fixed",
        "correct",
        "errors",
        "skipped",
        "error_message",
    ]
    ordering = ["-started_at"]

import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("stripe_account_key", models.CharField(db_index=True, default="SU", help_text="Key of the Stripe account in STRIPE_ACCOUNTS", max_length=20)),
                ("stripe_subscription_id", models.CharField(blank=True, help_text="Stripe Subscription ID (sub_xxx)", max_length=255, null=True, unique=True)),
                ("stripe_customer_id", models.CharField(blank=True, db_index=True, default="", help_text="Stripe Customer ID (cus_xxx)", max_length=255)),
                ("status", django_fsm.FSMField(choices=[("ACTIVE", "Active"), ("TRIALING", "Trialing"), ("PAUSED", "Paused"), ("PAST_DUE", "Past Due"), ("INCOMPLETE", "Incomplete"), ("INCOMPLETE_EXPIRED", "Incomplete Expired"), ("CANCELLED", "Cancelled")], db_index=True, default="ACTIVE", help_text="Current status of the subscription (managed by FSM)", max_length=50)),
                ("current_period_start", models.DateTimeField(blank=True, help_text="Start of current billing period", null=True)),
                ("current_period_end", models.DateTimeField(blank=True, help_text="End of current billing period", null=True)),
                ("next_billing_date", models.DateTimeField(blank=True, help_text="Next date Stripe will attempt collection", null=True)),
                ("monthly_price_cents", models.PositiveIntegerField(help_text="Monthly price in smallest currency unit (pence)")),
                ("currency", models.CharField(default="GBP", help_text="ISO 4217 currency code (upper-case)", max_length=3)),
                ("cancel_at_period_end", models.BooleanField(default=False, help_text="Whether subscription will cancel at period end")),
                ("cancelled_at", models.DateTimeField(blank=True, help_text="When subscription was cancelled", null=True)),
                ("owner", models.ForeignKey(help_text="Member paying for the subscription", on_delete=django.db.models.deletion.PROTECT, related_name="subscriptions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["owner", "status"], name="sub_owner_status_idx"),
                    models.Index(fields=["stripe_account_key", "status"], name="sub_account_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("monthly_price_cents__gt", 0)), name="subscription_price_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Membership",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("status", models.CharField(choices=[("ACTIVE", "Active"), ("SUSPENDED", "Suspended"), ("PENDING_PAYMENT", "Pending Payment"), ("CANCELLED", "Cancelled")], db_index=True, default="ACTIVE", help_text="Access status, derived from the subscription", max_length=20)),
                ("plan_type", models.CharField(blank=True, default="", help_text="Plan identifier", max_length=50)),
                ("schedule_access", models.JSONField(blank=True, default=list, help_text="Class categories this membership can book")),
                ("subscription", models.OneToOneField(help_text="Subscription this membership is derived from", on_delete=django.db.models.deletion.CASCADE, related_name="membership", to="billing.subscription")),
            ],
            options={
                "verbose_name": "Membership",
                "verbose_name_plural": "Memberships",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PauseWindow",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("kind", models.CharField(choices=[("FIXED", "Fixed"), ("OPEN_ENDED", "Open Ended")], default="FIXED", help_text="FIXED (month or date range) or OPEN_ENDED master", max_length=20)),
                ("year", models.PositiveSmallIntegerField(blank=True, help_text="Calendar year of a month row or master start", null=True)),
                ("month", models.PositiveSmallIntegerField(blank=True, help_text="Calendar month (1-12) of a month row or master start", null=True)),
                ("start_date", models.DateField(blank=True, help_text="First paused day of a date-range window", null=True)),
                ("end_date", models.DateField(blank=True, help_text="Last paused day of a date-range window (inclusive)", null=True)),
                ("closed_at", models.DateTimeField(blank=True, help_text="When an open-ended master was closed", null=True)),
                ("status", django_fsm.FSMField(choices=[("SCHEDULED", "Scheduled"), ("ACTIVE", "Active"), ("CREDIT_APPLIED", "Credit Applied"), ("CANCELLED", "Cancelled")], db_index=True, default="SCHEDULED", help_text="Current state of the window (managed by FSM)", max_length=50)),
                ("behavior", models.CharField(choices=[("void", "Void"), ("keep_as_draft", "Keep as Draft"), ("mark_uncollectible", "Mark Uncollectible")], default="void", help_text="Stripe pause_collection behavior", max_length=20)),
                ("reason", models.CharField(blank=True, default="", help_text="Why the pause was scheduled", max_length=255)),
                ("paused_days", models.PositiveIntegerField(default=0, help_text="Number of paused days (date-range windows)")),
                ("credit_cents", models.PositiveIntegerField(default=0, help_text="Settlement credit in pence")),
                ("stripe_invoice_item_id", models.CharField(blank=True, help_text="Stripe InvoiceItem ID (ii_xxx) carrying the credit", max_length=255, null=True)),
                ("applied_pause_at", models.DateTimeField(blank=True, help_text="When Stripe confirmed the pause", null=True)),
                ("applied_resume_at", models.DateTimeField(blank=True, help_text="When Stripe confirmed the resume", null=True)),
                ("credit_applied_at", models.DateTimeField(blank=True, help_text="When the settlement credit was applied", null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, help_text="When the window was cancelled", null=True)),
                ("subscription", models.ForeignKey(help_text="Subscription this pause applies to", on_delete=django.db.models.deletion.CASCADE, related_name="pause_windows", to="billing.subscription")),
            ],
            options={
                "verbose_name": "Pause Window",
                "verbose_name_plural": "Pause Windows",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["subscription", "status"], name="pausewin_sub_status_idx"),
                    models.Index(fields=["year", "month", "status"], name="pausewin_month_status_idx"),
                    models.Index(fields=["status", "start_date"], name="pausewin_status_start_idx"),
                    models.Index(fields=["status", "end_date"], name="pausewin_status_end_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("status", "CANCELLED"), _negated=True), fields=("subscription", "year", "month"), name="pause_window_unique_month"),
                    models.CheckConstraint(condition=models.Q(("start_date__isnull", True), ("end_date__isnull", True), ("end_date__gte", models.F("start_date")), _connector="OR"), name="pause_window_range_ordered"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("stripe_invoice_id", models.CharField(help_text="Stripe Invoice ID (in_xxx)", max_length=255, unique=True)),
                ("amount_cents", models.PositiveIntegerField(default=0, help_text="Invoice amount in pence")),
                ("currency", models.CharField(default="GBP", help_text="ISO 4217 currency code (upper-case)", max_length=3)),
                ("status", models.CharField(blank=True, default="", help_text="Stripe invoice status", max_length=30)),
                ("period_start", models.DateTimeField(blank=True, help_text="Start of the billed period", null=True)),
                ("period_end", models.DateTimeField(blank=True, help_text="End of the billed period", null=True)),
                ("paid_at", models.DateTimeField(blank=True, help_text="When the invoice was paid", null=True)),
                ("subscription", models.ForeignKey(blank=True, help_text="Subscription this invoice bills", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="invoices", to="billing.subscription")),
            ],
            options={
                "verbose_name": "Invoice",
                "verbose_name_plural": "Invoices",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["subscription", "status"], name="invoice_sub_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("amount_cents", models.PositiveIntegerField(help_text="Payment amount in pence")),
                ("currency", models.CharField(default="GBP", help_text="ISO 4217 currency code (upper-case)", max_length=3)),
                ("status", models.CharField(choices=[("CONFIRMED", "Confirmed"), ("FAILED", "Failed"), ("PENDING", "Pending")], db_index=True, default="PENDING", help_text="Payment status", max_length=20)),
                ("stripe_invoice_id", models.CharField(blank=True, help_text="Stripe Invoice ID (in_xxx)", max_length=255, null=True, unique=True)),
                ("stripe_payment_intent_id", models.CharField(blank=True, db_index=True, help_text="Stripe PaymentIntent ID (pi_xxx)", max_length=255, null=True)),
                ("description", models.CharField(blank=True, default="", help_text="Human-readable description", max_length=500)),
                ("routed_entity_id", models.CharField(blank=True, default="", help_text="Business entity the payment was routed to", max_length=100)),
                ("failure_reason", models.TextField(blank=True, help_text="Why the payment failed", null=True)),
                ("failed_at", models.DateTimeField(blank=True, help_text="When the payment failed", null=True)),
                ("processed_at", models.DateTimeField(blank=True, help_text="When the payment was recorded as confirmed", null=True)),
                ("operation_id", models.CharField(blank=True, default="", help_text="Idempotency key of the operation that wrote this row", max_length=255)),
                ("invoice", models.ForeignKey(blank=True, help_text="Invoice snapshot this payment settled", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payments", to="billing.invoice")),
                ("owner", models.ForeignKey(help_text="Member who made the payment", on_delete=django.db.models.deletion.PROTECT, related_name="payments", to=settings.AUTH_USER_MODEL)),
                ("subscription", models.ForeignKey(blank=True, help_text="Subscription this payment belongs to", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="billing.subscription")),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["owner", "status"], name="payment_owner_status_idx"),
                    models.Index(fields=["subscription", "status", "created_at"], name="payment_sub_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLogEntry",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("action", models.CharField(choices=[("PAUSE_SCHEDULE_CREATE", "Pause Schedule Created"), ("PAUSE_AUTO_APPLY", "Pause Auto Applied"), ("RESUME_AUTO_APPLY", "Resume Auto Applied"), ("PAUSE_STARTED", "Pause Started"), ("PAUSE_ENDED", "Pause Ended"), ("PAUSE_COMPLETED", "Pause Completed"), ("PAUSE_RESUMED_EARLY", "Pause Resumed Early"), ("PAUSE_WINDOW_CANCELLED", "Pause Window Cancelled"), ("PAUSE_VERIFY_FIX", "Pause Verify Fix"), ("PAUSE_BACKSTOP_FIX", "Pause Backstop Fix"), ("RECONCILE_STATUS", "Reconcile Status"), ("PAYMENT_PHANTOM_FAILED", "Phantom Payment Failed")], db_index=True, help_text="Audited action", max_length=40)),
                ("operation_id", models.CharField(help_text="Unique operation key", max_length=255, unique=True)),
                ("performed_by", models.CharField(default="SYSTEM", help_text="Who performed the action", max_length=255)),
                ("reason", models.CharField(blank=True, default="", help_text="Why the action was performed", max_length=500)),
                ("payload", models.JSONField(blank=True, default=dict, help_text="Action-specific payload")),
                ("subscription", models.ForeignKey(help_text="Subscription the action touched", on_delete=django.db.models.deletion.PROTECT, related_name="audit_entries", to="billing.subscription")),
            ],
            options={
                "verbose_name": "Audit Log Entry",
                "verbose_name_plural": "Audit Log Entries",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["subscription", "created_at"], name="audit_sub_created_idx"),
                    models.Index(fields=["action", "created_at"], name="audit_action_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("stripe_event_id", models.CharField(help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency", max_length=255, unique=True)),
                ("stripe_account_key", models.CharField(default="SU", help_text="Stripe account whose webhook secret verified the event", max_length=20)),
                ("event_type", models.CharField(db_index=True, help_text="Stripe event type (e.g., 'invoice.payment_succeeded')", max_length=100)),
                ("payload", models.JSONField(help_text="Full webhook payload from Stripe (JSON)")),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("processed", "Processed"), ("failed", "Failed")], db_index=True, default="pending", help_text="Current processing status", max_length=20)),
                ("processed_at", models.DateTimeField(blank=True, help_text="When event was successfully processed", null=True)),
                ("error_message", models.TextField(blank=True, help_text="Error message if processing failed", null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts")),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
                    models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ReconciliationRun",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("started_at", models.DateTimeField(help_text="When this run started")),
                ("completed_at", models.DateTimeField(blank=True, help_text="When this run completed (or failed)", null=True)),
                ("stripe_account_key", models.CharField(blank=True, default="", help_text="Account the run was limited to (blank for all)", max_length=20)),
                ("checked", models.PositiveIntegerField(default=0, help_text="Subscriptions examined")),
                ("fixed", models.PositiveIntegerField(default=0, help_text="Subscriptions whose local state was corrected")),
                ("correct", models.PositiveIntegerField(default=0, help_text="Subscriptions already in sync")),
                ("errors", models.PositiveIntegerField(default=0, help_text="Subscriptions that failed to reconcile")),
                ("skipped", models.PositiveIntegerField(default=0, help_text="Subscriptions skipped (no Stripe id or terminal)")),
                ("status", models.CharField(choices=[("running", "Running"), ("completed", "Completed"), ("failed", "Failed")], db_index=True, default="running", help_text="Current status of this run", max_length=20)),
                ("error_message", models.TextField(blank=True, help_text="Error message if the run failed")),
            ],
            options={
                "ordering": ["-started_at"],
                "indexes": [
                    models.Index(fields=["status", "started_at"], name="reconrun_status_started_idx"),
                ],
            },
        ),
    ]

"""
Add Celery Beat schedules for the billing passes.

Month boundary (UTC):
- Apply pauses on the 28th, ahead of the invoices raised on the 1st
- Verify pauses on the 28th-31st after apply
- Backstop on the 1st-3rd after invoices are raised

Recurring:
- Daily date-range pause start/end
- Subscription reconciliation every 6 hours
- Paid invoice recovery daily
- Webhook retry / stuck reset
"""

from django.db import migrations

TASK_NAMES = [
    "Billing: Apply Pauses",
    "Billing: Verify Pauses",
    "Billing: Backstop Pauses",
    "Billing: Apply Pause Credits",
    "Billing: Reconcile Subscriptions",
    "Billing: Recover Paid Invoices",
    "Billing: Retry Failed Webhooks",
    "Billing: Cleanup Stuck Webhooks",
]


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for the billing passes."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # =========================================================================
    # Interval Schedules
    # =========================================================================

    schedule_15min, _ = IntervalSchedule.objects.get_or_create(every=15, period="minutes")
    schedule_30min, _ = IntervalSchedule.objects.get_or_create(every=30, period="minutes")
    schedule_6hours, _ = IntervalSchedule.objects.get_or_create(every=6, period="hours")

    # =========================================================================
    # Crontab Schedules
    # =========================================================================

    crontab_28th_2am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="2",
        day_of_week="*",
        day_of_month="28",
        month_of_year="*",
    )
    crontab_month_end_6am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="6",
        day_of_week="*",
        day_of_month="28-31",
        month_of_year="*",
    )
    crontab_month_start_6am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="6",
        day_of_week="*",
        day_of_month="1-3",
        month_of_year="*",
    )
    crontab_daily_0030, _ = CrontabSchedule.objects.get_or_create(
        minute="30",
        hour="0",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )
    crontab_daily_4am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="4",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )

    # =========================================================================
    # Periodic Tasks - Pause Windows
    # =========================================================================

    PeriodicTask.objects.get_or_create(
        name="Billing: Apply Pauses",
        defaults={
            "task": "billing.tasks.apply_pauses",
            "crontab": crontab_28th_2am,
            "enabled": True,
            "description": (
                "Applies next month's pause windows in Stripe and resumes "
                "windows that do not continue into next month."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Billing: Verify Pauses",
        defaults={
            "task": "billing.tasks.verify_pauses",
            "crontab": crontab_month_end_6am,
            "enabled": True,
            "description": "Re-pauses or re-resumes subscriptions whose Stripe state drifted.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Billing: Backstop Pauses",
        defaults={
            "task": "billing.tasks.backstop_pauses",
            "crontab": crontab_month_start_6am,
            "enabled": True,
            "description": (
                "Voids stray open invoices for voided pauses and un-pauses "
                "subscriptions no longer covered."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Billing: Apply Pause Credits",
        defaults={
            "task": "billing.tasks.apply_pause_credits",
            "crontab": crontab_daily_0030,
            "enabled": True,
            "description": (
                "Starts date-range pauses due today and applies the settlement "
                "credit for pauses that ended."
            ),
        },
    )

    # =========================================================================
    # Periodic Tasks - Reconciliation
    # =========================================================================

    PeriodicTask.objects.get_or_create(
        name="Billing: Reconcile Subscriptions",
        defaults={
            "task": "billing.tasks.reconcile_subscriptions",
            "interval": schedule_6hours,
            "enabled": True,
            "description": "Corrects local subscription and membership drift from Stripe.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Billing: Recover Paid Invoices",
        defaults={
            "task": "billing.tasks.recover_paid_invoices",
            "crontab": crontab_daily_4am,
            "enabled": True,
            "description": "Re-confirms FAILED payments whose invoice was paid in Stripe.",
        },
    )

    # =========================================================================
    # Periodic Tasks - Webhooks
    # =========================================================================

    PeriodicTask.objects.get_or_create(
        name="Billing: Retry Failed Webhooks",
        defaults={
            "task": "billing.tasks.retry_failed_webhooks",
            "interval": schedule_15min,
            "enabled": True,
            "description": "Re-queues failed webhook events with retries left.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Billing: Cleanup Stuck Webhooks",
        defaults={
            "task": "billing.tasks.cleanup_stuck_webhooks",
            "interval": schedule_30min,
            "enabled": True,
            "description": "Resets webhook events stuck in PROCESSING for more than 30 minutes.",
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove all billing periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name__in=TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]

"""
Celery configuration for the billing back office.

Celery runs the scheduled billing passes (pause apply/verify/backstop,
daily pause credits, subscription reconciliation, paid invoice recovery)
and the Stripe webhook retries. Schedules are stored with
django-celery-beat's DatabaseScheduler.

Tasks are auto-discovered from all installed Django apps.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()

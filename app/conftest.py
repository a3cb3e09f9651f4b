"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

TEST_CRON_SECRET = "test-cron-secret"


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # The test client talks plain HTTP
    settings.SECURE_SSL_REDIRECT = False

    settings.CRON_SECRET = TEST_CRON_SECRET
    settings.STRIPE_DEFAULT_ACCOUNT = "SU"
    settings.STRIPE_ACCOUNTS = {
        "SU": {"secret_key": "sk_test_su", "webhook_secret": "whsec_test_su"},
        "NE": {"secret_key": "sk_test_ne", "webhook_secret": "whsec_test_ne"},
    }


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full member journeys)
    - test_views.py, test_*_service.py, test_tasks.py, etc. → integration
    - test_calculator.py, test_settlement.py, test_mapping.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_tasks.py",
        "test_permissions.py",
        "test_handlers.py",
        "test_ledger_service.py",
        "test_pause_scheduler.py",
        "test_pause_credits.py",
        "test_reconciliation_service.py",
        "test_admin_actions.py",
        "test_audit.py",
    ]

    unit_patterns = [
        "test_calculator.py",
        "test_settlement.py",
        "test_types.py",
        "test_mapping.py",
        "test_stripe_adapter.py",
        "test_models.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)

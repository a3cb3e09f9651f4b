"""
Pytest fixtures for cron endpoint tests.
"""

import pytest
from django.conf import settings
from rest_framework.test import APIClient


@pytest.fixture
def api_client():
    """API client without a cron secret."""
    return APIClient()


@pytest.fixture
def cron_client():
    """API client sending the x-cron-secret header."""
    client = APIClient()
    client.credentials(HTTP_X_CRON_SECRET=settings.CRON_SECRET)
    return client

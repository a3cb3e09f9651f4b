"""
Tests for the cron trigger endpoints.

Tests cover:
- Secret enforcement on every endpoint
- Request validation
- Parameter forwarding to AdminBillingActions
- 200 / 500 mapping of the ServiceResult
"""

from datetime import date
from unittest.mock import patch

import pytest
from django.conf import settings
from rest_framework import status

from core.services import ServiceResult

from billing.services import AdminBillingActions
from billing.services.subscription_reconciler import DEFAULT_BATCH_LIMIT

BASE_URL = "/api/v1/billing/cron"

ENDPOINTS = [
    ("apply-pauses", "apply_pauses"),
    ("resume-pauses", "resume_pauses"),
    ("verify-pauses", "verify_pauses"),
    ("backstop-pauses", "backstop_pauses"),
    ("apply-pause-credits", "apply_pause_credits"),
    ("reconcile-subscriptions", "reconcile_subscriptions"),
    ("recover-paid-invoices", "recover_paid_invoices"),
]


# =============================================================================
# Authentication Tests
# =============================================================================


@pytest.mark.django_db
class TestCronAuth:
    """Every endpoint requires the cron secret."""

    @pytest.mark.parametrize("path,action", ENDPOINTS)
    def test_missing_secret_forbidden(self, api_client, path, action):
        with patch.object(AdminBillingActions, action) as mock_action:
            response = api_client.post(f"{BASE_URL}/{path}/", {}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        mock_action.assert_not_called()

    def test_wrong_secret_forbidden(self, api_client):
        api_client.credentials(HTTP_X_CRON_SECRET="not-the-secret")

        response = api_client.post(f"{BASE_URL}/apply-pauses/", {}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["detail"] == "Unauthorized"

    def test_get_not_allowed(self, cron_client):
        response = cron_client.get(f"{BASE_URL}/apply-pauses/")

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED


# =============================================================================
# Pause Pass Tests
# =============================================================================


@pytest.mark.django_db
class TestPausePassViews:
    """Tests for the month based pause passes."""

    @pytest.mark.parametrize("path,action", ENDPOINTS[:4])
    def test_forwards_month(self, cron_client, path, action):
        with patch.object(AdminBillingActions, action) as mock_action:
            mock_action.return_value = ServiceResult.success({"month": "2026-05"})

            response = cron_client.post(
                f"{BASE_URL}/{path}/", {"as_of_month": "2026-05"}, format="json"
            )

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"success": True, "data": {"month": "2026-05"}}
        mock_action.assert_called_once_with("2026-05")

    def test_month_defaults_to_none(self, cron_client):
        with patch.object(AdminBillingActions, "apply_pauses") as mock_action:
            mock_action.return_value = ServiceResult.success({})

            cron_client.post(f"{BASE_URL}/apply-pauses/", {}, format="json")

        mock_action.assert_called_once_with(None)

    @pytest.mark.parametrize("bad_month", ["2026-13", "May", "2026/05"])
    def test_invalid_month(self, cron_client, bad_month):
        with patch.object(AdminBillingActions, "apply_pauses") as mock_action:
            response = cron_client.post(
                f"{BASE_URL}/apply-pauses/", {"as_of_month": bad_month}, format="json"
            )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "as_of_month" in response.data
        mock_action.assert_not_called()

    def test_failure_returns_500(self, cron_client):
        with patch.object(AdminBillingActions, "verify_pauses") as mock_action:
            mock_action.return_value = ServiceResult.failure(
                "Stripe is down", error_code="STRIPE_UNAVAILABLE"
            )

            response = cron_client.post(f"{BASE_URL}/verify-pauses/", {}, format="json")

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.data["success"] is False
        assert response.data["error_code"] == "STRIPE_UNAVAILABLE"

    def test_bearer_token_accepted(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {settings.CRON_SECRET}")
        with patch.object(AdminBillingActions, "resume_pauses") as mock_action:
            mock_action.return_value = ServiceResult.success({})

            response = api_client.post(f"{BASE_URL}/resume-pauses/", {}, format="json")

        assert response.status_code == status.HTTP_200_OK


# =============================================================================
# Daily / Reconciliation Pass Tests
# =============================================================================


@pytest.mark.django_db
class TestOtherPassViews:
    """Tests for the daily credit and reconciliation endpoints."""

    def test_pause_credits_today(self, cron_client):
        with patch.object(AdminBillingActions, "apply_pause_credits") as mock_action:
            mock_action.return_value = ServiceResult.success({"today": "2026-05-06"})

            response = cron_client.post(
                f"{BASE_URL}/apply-pause-credits/", {"today": "2026-05-06"}, format="json"
            )

        assert response.status_code == status.HTTP_200_OK
        mock_action.assert_called_once_with(date(2026, 5, 6))

    def test_reconcile_defaults(self, cron_client):
        with patch.object(AdminBillingActions, "reconcile_subscriptions") as mock_action:
            mock_action.return_value = ServiceResult.success({"checked": 0})

            response = cron_client.post(
                f"{BASE_URL}/reconcile-subscriptions/", {}, format="json"
            )

        assert response.status_code == status.HTTP_200_OK
        mock_action.assert_called_once_with(None, limit=DEFAULT_BATCH_LIMIT, dry_run=False)

    def test_reconcile_params(self, cron_client):
        with patch.object(AdminBillingActions, "reconcile_subscriptions") as mock_action:
            mock_action.return_value = ServiceResult.success({"checked": 0})

            cron_client.post(
                f"{BASE_URL}/reconcile-subscriptions/",
                {"account_key": "NE", "limit": 20, "dry_run": True},
                format="json",
            )

        mock_action.assert_called_once_with("NE", limit=20, dry_run=True)

    def test_reconcile_rejects_zero_limit(self, cron_client):
        response = cron_client.post(
            f"{BASE_URL}/reconcile-subscriptions/", {"limit": 0}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_recover_paid_invoices(self, cron_client):
        with patch.object(AdminBillingActions, "recover_paid_invoices") as mock_action:
            mock_action.return_value = ServiceResult.success(
                {"checked": 2, "recovered": 1, "errors": []}
            )

            response = cron_client.post(
                f"{BASE_URL}/recover-paid-invoices/", {"limit": 10}, format="json"
            )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["recovered"] == 1
        mock_action.assert_called_once_with(limit=10)

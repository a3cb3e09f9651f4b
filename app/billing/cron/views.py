"""
DRF views for the cron trigger endpoints.

Endpoints (all POST, prefixed with /api/v1/billing/cron/):
    apply-pauses/            Month-end apply + resume
    resume-pauses/           Resume pass on its own
    verify-pauses/           Intended vs actual pause comparison
    backstop-pauses/         Void stray invoices, un-pause leftovers
    apply-pause-credits/     Daily date-range start/end
    reconcile-subscriptions/ Status drift correction
    recover-paid-invoices/   Re-confirm FAILED payments paid upstream

Security:
    - HasCronSecret (x-cron-secret or Bearer CRON_SECRET)
    - No session/token authentication
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.cron.permissions import HasCronSecret
from billing.cron.serializers import (
    DailyPassSerializer,
    MonthPassSerializer,
    ReconcileSerializer,
)
from billing.services import AdminBillingActions

logger = logging.getLogger(__name__)


class CronJobView(APIView):
    """
    Base view: validate the body, run the job, map the ServiceResult.

    Subclasses set serializer_class and implement run(validated_data).
    """

    authentication_classes: list = []
    permission_classes = [HasCronSecret]
    serializer_class = MonthPassSerializer
    job_name = ""

    def run(self, data: dict):
        raise NotImplementedError

    def post(self, request):
        serializer = self.serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)

        logger.info(f"Cron trigger: {self.job_name}", extra={"params": serializer.validated_data})
        result = self.run(serializer.validated_data)
        if not result.success:
            return Response(result.to_response(), status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(result.to_response(), status=status.HTTP_200_OK)


class ApplyPausesView(CronJobView):
    job_name = "apply_pauses"

    def run(self, data):
        return AdminBillingActions.apply_pauses(data.get("as_of_month"))


class ResumePausesView(CronJobView):
    job_name = "resume_pauses"

    def run(self, data):
        return AdminBillingActions.resume_pauses(data.get("as_of_month"))


class VerifyPausesView(CronJobView):
    job_name = "verify_pauses"

    def run(self, data):
        return AdminBillingActions.verify_pauses(data.get("as_of_month"))


class BackstopPausesView(CronJobView):
    job_name = "backstop_pauses"

    def run(self, data):
        return AdminBillingActions.backstop_pauses(data.get("as_of_month"))


class ApplyPauseCreditsView(CronJobView):
    serializer_class = DailyPassSerializer
    job_name = "apply_pause_credits"

    def run(self, data):
        return AdminBillingActions.apply_pause_credits(data.get("today"))


class ReconcileSubscriptionsView(CronJobView):
    serializer_class = ReconcileSerializer
    job_name = "reconcile_subscriptions"

    def run(self, data):
        return AdminBillingActions.reconcile_subscriptions(
            data.get("account_key"),
            limit=data["limit"],
            dry_run=data["dry_run"],
        )


class RecoverPaidInvoicesView(CronJobView):
    serializer_class = ReconcileSerializer
    job_name = "recover_paid_invoices"

    def run(self, data):
        return AdminBillingActions.recover_paid_invoices(limit=data["limit"])

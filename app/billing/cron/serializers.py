"""
Request serializers for the cron trigger endpoints.

All parameters are optional; without them each pass uses its default
month (or today) from the clock.
"""

from rest_framework import serializers

from billing.exceptions import ProrationError
from billing.proration import MonthKey
from billing.services.subscription_reconciler import DEFAULT_BATCH_LIMIT


class MonthPassSerializer(serializers.Serializer):
    """Body of the month based pause passes."""

    as_of_month = serializers.CharField(required=False, allow_blank=False)

    def validate_as_of_month(self, value: str) -> str:
        try:
            MonthKey.parse(value)
        except ProrationError as e:
            raise serializers.ValidationError(e.message) from e
        return value


class DailyPassSerializer(serializers.Serializer):
    today = serializers.DateField(required=False)


class ReconcileSerializer(serializers.Serializer):
    account_key = serializers.CharField(required=False, allow_blank=False)
    limit = serializers.IntegerField(required=False, min_value=1, default=DEFAULT_BATCH_LIMIT)
    dry_run = serializers.BooleanField(required=False, default=False)

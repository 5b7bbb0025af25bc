"""Serializers for the dispatch endpoints."""
from __future__ import annotations

from typing import Any

from rest_framework import serializers

from .responses import ACTION_CODES


class BookingResponseParamsSerializer(serializers.Serializer):
    """Query/form parameters of an accept/decline link.

    Links sent by SMS use one-letter keys (``a``, ``b``, ``t``) and ``1``/``0``
    action codes; :meth:`from_request_data` folds them into the long names.
    """

    ALIASES = {
        'action': ('action', 'a'),
        'booking': ('booking', 'b'),
        'provider': ('provider', 'therapist', 'p', 't'),
    }

    action = serializers.CharField()
    booking = serializers.CharField(max_length=40)
    provider = serializers.UUIDField()

    @classmethod
    def from_request_data(cls, data) -> 'BookingResponseParamsSerializer':
        folded = {}
        for name, keys in cls.ALIASES.items():
            for key in keys:
                value = data.get(key)
                if value not in (None, ''):
                    folded[name] = value
                    break
        return cls(data=folded)

    def validate_action(self, value: str) -> str:
        action = ACTION_CODES.get(value.strip().lower())
        if not action:
            raise serializers.ValidationError('Invalid action.')
        return action

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        attrs['booking'] = attrs['booking'].strip()
        return attrs


class SweepResultSerializer(serializers.Serializer):
    booking = serializers.CharField()
    stage = serializers.CharField()
    action = serializers.CharField()
    threshold_minutes = serializers.IntegerField(allow_null=True)
    elapsed_minutes = serializers.IntegerField(allow_null=True)
    candidate_count = serializers.IntegerField()
    error = serializers.CharField(allow_blank=True)


class SweepSummarySerializer(serializers.Serializer):
    started_at = serializers.DateTimeField()
    processed = serializers.IntegerField()
    transitioned = serializers.IntegerField()
    failed = serializers.IntegerField()
    results = SweepResultSerializer(many=True)

from typing import TYPE_CHECKING, Annotated

from dependency_injector.wiring import Provide, inject
from rest_framework import serializers

from events.constants import RecurrencePattern
from events.services.dataclasses import RecurrencePatternData, RecurrenceRuleInputData


if TYPE_CHECKING:
    from events.services.preview_service import RecurrencePreviewService
    from events.services.recurrence_manager import RecurrenceManager


class RecurrencePatternFieldsSerializer(serializers.Serializer):
    """Field-level checks only; cross-field rules live in RecurrenceRuleValidator."""

    pattern = serializers.ChoiceField(choices=RecurrencePattern.choices)
    interval = serializers.IntegerField(min_value=1, default=1)
    end_date = serializers.DateField()
    days_of_week = serializers.ListField(
        child=serializers.IntegerField(min_value=0, max_value=6),
        allow_null=True,
        required=False,
    )
    day_of_month = serializers.IntegerField(
        min_value=1, max_value=31, allow_null=True, required=False
    )
    month_of_year = serializers.IntegerField(
        min_value=1, max_value=12, allow_null=True, required=False
    )


class RecurrenceRuleSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)  # noqa: A003
    template_event_id = serializers.IntegerField(read_only=True)
    pattern = serializers.ChoiceField(choices=RecurrencePattern.choices, read_only=True)
    interval = serializers.IntegerField(read_only=True)
    end_date = serializers.DateField(read_only=True)
    days_of_week = serializers.ListField(
        child=serializers.IntegerField(), allow_null=True, read_only=True
    )
    day_of_month = serializers.IntegerField(allow_null=True, read_only=True)
    month_of_year = serializers.IntegerField(allow_null=True, read_only=True)
    is_active = serializers.BooleanField(read_only=True)
    created_by_id = serializers.IntegerField(allow_null=True, read_only=True)
    created = serializers.DateTimeField(allow_null=True, read_only=True)
    modified = serializers.DateTimeField(allow_null=True, read_only=True)


class RecurrenceRuleCreateSerializer(RecurrencePatternFieldsSerializer):
    template_event_id = serializers.IntegerField(min_value=1)

    @inject
    def __init__(
        self,
        *args,
        recurrence_manager: Annotated[
            "RecurrenceManager | None", Provide["recurrence_manager"]
        ] = None,
        **kwargs,
    ):
        self.recurrence_manager = recurrence_manager
        super().__init__(*args, **kwargs)

    def create(self, validated_data):
        user = self.context["request"].user
        return self.recurrence_manager.create_rule(
            RecurrenceRuleInputData(
                template_event_id=validated_data["template_event_id"],
                pattern=validated_data["pattern"],
                end_date=validated_data["end_date"],
                interval=validated_data.get("interval", 1),
                days_of_week=validated_data.get("days_of_week"),
                day_of_month=validated_data.get("day_of_month"),
                month_of_year=validated_data.get("month_of_year"),
            ),
            created_by_id=user.id,
        )


class RecurrenceRuleUpdateSerializer(RecurrencePatternFieldsSerializer):
    """
    Updates a rule in place. The template event and the rule owner cannot change;
    every occurrence is regenerated from the merged rule.
    """

    is_active = serializers.BooleanField(required=False)

    @inject
    def __init__(
        self,
        *args,
        recurrence_manager: Annotated[
            "RecurrenceManager | None", Provide["recurrence_manager"]
        ] = None,
        **kwargs,
    ):
        self.recurrence_manager = recurrence_manager
        super().__init__(*args, **kwargs)

    def update(self, instance, validated_data):
        return self.recurrence_manager.update_rule(instance.id, dict(validated_data))


class RecurrenceRuleToggleSerializer(serializers.Serializer):
    is_active = serializers.BooleanField()


class RecurrenceRuleListParamsSerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)
    template_event_id = serializers.IntegerField(min_value=1, required=False)


class RecurrencePreviewSerializer(RecurrencePatternFieldsSerializer):
    template_event_id = serializers.IntegerField(min_value=1)

    @inject
    def __init__(
        self,
        *args,
        recurrence_preview_service: Annotated[
            "RecurrencePreviewService | None", Provide["recurrence_preview_service"]
        ] = None,
        **kwargs,
    ):
        self.recurrence_preview_service = recurrence_preview_service
        super().__init__(*args, **kwargs)

    def get_preview(self):
        data = self.validated_data
        days_of_week = data.get("days_of_week")
        return self.recurrence_preview_service.preview(
            data["template_event_id"],
            RecurrencePatternData(
                pattern=data["pattern"],
                interval=data.get("interval", 1),
                end_date=data["end_date"],
                days_of_week=tuple(days_of_week) if days_of_week is not None else None,
                day_of_month=data.get("day_of_month"),
                month_of_year=data.get("month_of_year"),
            ),
        )


class OccurrencePreviewSerializer(serializers.Serializer):
    title = serializers.CharField(read_only=True)
    event_type = serializers.CharField(read_only=True)
    start_date = serializers.DateTimeField(read_only=True)
    end_date = serializers.DateTimeField(read_only=True)


class OccurrenceSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)  # noqa: A003
    title = serializers.CharField(read_only=True)
    description = serializers.CharField(read_only=True)
    event_type = serializers.CharField(read_only=True)
    location = serializers.CharField(read_only=True)
    start_date = serializers.DateTimeField(read_only=True)
    end_date = serializers.DateTimeField(read_only=True)
    recurrence_rule_id = serializers.IntegerField(read_only=True)


class RegenerationResultSerializer(serializers.Serializer):
    rule_id = serializers.IntegerField(read_only=True)
    count = serializers.IntegerField(read_only=True)
    created_event_ids = serializers.ListField(child=serializers.IntegerField(), read_only=True)

import logging
from typing import Annotated

from dependency_injector.wiring import Provide, inject
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import APIException, NotFound, ValidationError
from rest_framework.response import Response

from events.exceptions import (
    RecordStoreError,
    RecurrenceDependencyError,
    RecurrenceValidationError,
)
from events.serializers import (
    OccurrencePreviewSerializer,
    OccurrenceSerializer,
    RecurrencePreviewSerializer,
    RecurrenceRuleCreateSerializer,
    RecurrenceRuleListParamsSerializer,
    RecurrenceRuleSerializer,
    RecurrenceRuleToggleSerializer,
    RecurrenceRuleUpdateSerializer,
    RegenerationResultSerializer,
)
from events.services.recurrence_manager import RecurrenceManager


logger = logging.getLogger(__name__)


class RecordStoreUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Event storage is temporarily unavailable, try again later."
    default_code = "record_store_unavailable"


class RecurrenceErrorHandlingMixin:
    """Translates recurrence engine errors into API errors."""

    def handle_exception(self, exc):
        if isinstance(exc, RecurrenceValidationError):
            exc = ValidationError({"non_field_errors": exc.errors})
        elif isinstance(exc, RecurrenceDependencyError):
            exc = NotFound(str(exc))
        elif isinstance(exc, RecordStoreError):
            logger.exception("Record store failure: %s", exc)
            exc = RecordStoreUnavailable()
        return super().handle_exception(exc)


class RecurrenceRuleViewSet(RecurrenceErrorHandlingMixin, viewsets.ViewSet):
    """
    ViewSet for managing recurrence rules. Every write replaces the rule's
    materialized occurrences.
    """

    lookup_value_regex = r"[0-9]+"

    @extend_schema(
        parameters=[
            OpenApiParameter(name="page", type=int, location=OpenApiParameter.QUERY),
            OpenApiParameter(name="limit", type=int, location=OpenApiParameter.QUERY),
            OpenApiParameter(
                name="template_event_id",
                type=int,
                location=OpenApiParameter.QUERY,
                description="Only list rules attached to this event",
            ),
        ],
        responses={200: RecurrenceRuleSerializer(many=True)},
    )
    @inject
    def list(  # noqa: A003
        self,
        request,
        recurrence_manager: Annotated[RecurrenceManager, Provide["recurrence_manager"]],
    ):
        params = RecurrenceRuleListParamsSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        rules = recurrence_manager.list_rules(
            page=params.validated_data["page"],
            limit=params.validated_data["limit"],
            template_event_id=params.validated_data.get("template_event_id"),
        )
        return Response(RecurrenceRuleSerializer(rules, many=True).data)

    @extend_schema(responses={200: RecurrenceRuleSerializer})
    @inject
    def retrieve(
        self,
        request,
        pk,
        recurrence_manager: Annotated[RecurrenceManager, Provide["recurrence_manager"]],
    ):
        rule = recurrence_manager.get_rule(int(pk))
        return Response(RecurrenceRuleSerializer(rule).data)

    @extend_schema(
        request=RecurrenceRuleCreateSerializer,
        responses={201: RecurrenceRuleSerializer},
    )
    def create(self, request):
        serializer = RecurrenceRuleCreateSerializer(
            data=request.data, context={"request": request}
        )
        serializer.is_valid(raise_exception=True)
        rule = serializer.save()
        return Response(RecurrenceRuleSerializer(rule).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        request=RecurrenceRuleUpdateSerializer,
        responses={200: RecurrenceRuleSerializer},
    )
    def update(self, request, pk, partial=False):
        rule = self._get_rule(int(pk))
        serializer = RecurrenceRuleUpdateSerializer(
            rule, data=request.data, partial=partial, context={"request": request}
        )
        serializer.is_valid(raise_exception=True)
        rule = serializer.save()
        return Response(RecurrenceRuleSerializer(rule).data)

    @extend_schema(
        request=RecurrenceRuleUpdateSerializer,
        responses={200: RecurrenceRuleSerializer},
    )
    def partial_update(self, request, pk):
        return self.update(request, pk, partial=True)

    @extend_schema(responses={204: None})
    @inject
    def destroy(
        self,
        request,
        pk,
        recurrence_manager: Annotated[RecurrenceManager, Provide["recurrence_manager"]],
    ):
        recurrence_manager.delete_rule(int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="Activate or deactivate a recurrence rule",
        description=(
            "Deactivating removes every materialized occurrence but keeps the rule; "
            "activating regenerates them."
        ),
        request=RecurrenceRuleToggleSerializer,
        responses={200: RecurrenceRuleSerializer},
    )
    @action(methods=["POST"], detail=True, url_path="toggle", url_name="toggle")
    @inject
    def toggle(
        self,
        request,
        pk,
        recurrence_manager: Annotated[RecurrenceManager, Provide["recurrence_manager"]],
    ):
        serializer = RecurrenceRuleToggleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        rule = recurrence_manager.toggle_rule(int(pk), serializer.validated_data["is_active"])
        return Response(RecurrenceRuleSerializer(rule).data)

    @extend_schema(request=None, responses={200: RegenerationResultSerializer})
    @action(methods=["POST"], detail=True, url_path="regenerate", url_name="regenerate")
    @inject
    def regenerate(
        self,
        request,
        pk,
        recurrence_manager: Annotated[RecurrenceManager, Provide["recurrence_manager"]],
    ):
        result = recurrence_manager.regenerate(int(pk))
        return Response(RegenerationResultSerializer(result).data)

    @extend_schema(responses={200: OccurrenceSerializer(many=True)})
    @action(methods=["GET"], detail=True, url_path="occurrences", url_name="occurrences")
    @inject
    def occurrences(
        self,
        request,
        pk,
        recurrence_manager: Annotated[RecurrenceManager, Provide["recurrence_manager"]],
    ):
        occurrences = recurrence_manager.list_occurrences(int(pk))
        return Response(OccurrenceSerializer(occurrences, many=True).data)

    @extend_schema(
        summary="Preview occurrences",
        description="Compute the occurrences a rule would create, without saving anything.",
        request=RecurrencePreviewSerializer,
        responses={200: OccurrencePreviewSerializer(many=True)},
    )
    @action(methods=["POST"], detail=False, url_path="preview", url_name="preview")
    def preview(self, request):
        serializer = RecurrencePreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        occurrences = serializer.get_preview()
        return Response(OccurrencePreviewSerializer(occurrences, many=True).data)

    @inject
    def _get_rule(
        self,
        rule_id: int,
        recurrence_manager: Annotated[RecurrenceManager, Provide["recurrence_manager"]],
    ):
        return recurrence_manager.get_rule(rule_id)

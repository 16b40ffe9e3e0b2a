import logging

from django.utils.dateparse import parse_datetime
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from infrastructure.container import container
from marketplace.services import ErrorCodes
from payment_system.api.permissions import IsStaffOrInternalService
from payment_system.api.serializers.request_serializers import (
    ReconciliationResolveRequestSerializer,
    ReconciliationSweepRequestSerializer,
)
from payment_system.api.serializers.response_serializers import (
    ErrorResponseSerializer,
    ReconciliationEntrySerializer,
    ReconciliationSweepResponseSerializer,
    RevenueSummarySerializer,
)
from payment_system.models import ReconciliationEntry


logger = logging.getLogger(__name__)

ENTRY_STATUSES = [choice for choice, _ in ReconciliationEntry.STATUS_CHOICES]


@extend_schema(
    operation_id="admin_list_reconciliation",
    summary="List reconciliation entries (Admin only)",
    description="""
    **What it receives:**
    - Optional `status` filter: open (default), resolved, abandoned

    **What it returns:**
    - Entries ordered by next attempt time
    """,
    parameters=[OpenApiParameter(name="status", type=str, description="Entry status (default: open)")],
    responses={
        200: ReconciliationEntrySerializer(many=True),
        400: OpenApiResponse(response=ErrorResponseSerializer, description="Unknown status"),
        403: OpenApiResponse(response=ErrorResponseSerializer, description="Staff access required"),
    },
    tags=["Admin - Reconciliation"],
)
@api_view(["GET"])
@permission_classes([IsStaffOrInternalService])
def list_reconciliation_entries(request):
    entry_status = request.query_params.get("status", ReconciliationEntry.STATUS_OPEN)
    if entry_status not in ENTRY_STATUSES:
        return Response(
            {"error": ErrorCodes.INVALID_INPUT, "detail": f"status must be one of {', '.join(ENTRY_STATUSES)}"},
            status=status.HTTP_400_BAD_REQUEST,
        )

    result = container.reconciliation_service().list_entries(status=entry_status)
    return Response(ReconciliationEntrySerializer(result.value, many=True).data, status=status.HTTP_200_OK)


@extend_schema(
    operation_id="admin_resolve_reconciliation",
    summary="Resolve a reconciliation entry by hand (Admin only)",
    description="""
    **What it receives:**
    - `entry_id` (UUID in URL)
    - `resolution_ref`: Provider reference for the manual fix
    - `notes`: Optional operator notes
    - `outcome`: `succeeded` or `failed`; required for unconfirmed unknown_charge / unknown_transfer entries

    **What it returns:**
    - The resolved entry. Payout entries also settle the order; unknown entries move
      their settlement to the confirmed outcome.
    """,
    request=ReconciliationResolveRequestSerializer,
    responses={
        200: ReconciliationEntrySerializer,
        400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid request or already resolved"),
        403: OpenApiResponse(response=ErrorResponseSerializer, description="Staff access required"),
        404: OpenApiResponse(response=ErrorResponseSerializer, description="Entry not found"),
    },
    tags=["Admin - Reconciliation"],
)
@api_view(["POST"])
@permission_classes([IsStaffOrInternalService])
def resolve_reconciliation_entry(request, entry_id):
    serializer = ReconciliationResolveRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": ErrorCodes.VALIDATION_ERROR, "detail": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )

    result = container.reconciliation_service().resolve_manually(
        entry_id,
        serializer.validated_data["resolution_ref"],
        serializer.validated_data["notes"],
        outcome=serializer.validated_data["outcome"],
    )
    if not result.ok:
        http_status = (
            status.HTTP_404_NOT_FOUND
            if result.error == ErrorCodes.RECONCILIATION_ENTRY_NOT_FOUND
            else status.HTTP_400_BAD_REQUEST
        )
        return Response({"error": result.error, "detail": result.error_detail}, status=http_status)

    logger.info(f"Entry {entry_id} resolved by {getattr(request.user, 'pk', None) or 'internal service'}")
    return Response(ReconciliationEntrySerializer(result.value).data, status=status.HTTP_200_OK)


@extend_schema(
    operation_id="admin_run_reconciliation_sweep",
    summary="Run the reconciliation sweep now (Admin only)",
    request=ReconciliationSweepRequestSerializer,
    responses={
        200: ReconciliationSweepResponseSerializer,
        403: OpenApiResponse(response=ErrorResponseSerializer, description="Staff access required"),
    },
    tags=["Admin - Reconciliation"],
)
@api_view(["POST"])
@permission_classes([IsStaffOrInternalService])
def run_reconciliation_sweep(request):
    serializer = ReconciliationSweepRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": ErrorCodes.VALIDATION_ERROR, "detail": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )

    result = container.reconciliation_service().run_sweep(limit=serializer.validated_data["limit"])
    return Response(result.value, status=status.HTTP_200_OK)


@extend_schema(
    operation_id="admin_revenue_summary",
    summary="Platform revenue (Admin only)",
    description="""
    **What it receives:**
    - Optional `since` (ISO 8601 datetime)

    **What it returns:**
    - Per currency: total commission, gross volume, seller payouts,
      orders settled and sellers paid, over every attempt that charged the buyer
    """,
    parameters=[OpenApiParameter(name="since", type=str, description="Only count attempts created after this time")],
    responses={
        200: RevenueSummarySerializer,
        400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid date"),
        403: OpenApiResponse(response=ErrorResponseSerializer, description="Staff access required"),
    },
    tags=["Admin - Revenue"],
)
@api_view(["GET"])
@permission_classes([IsStaffOrInternalService])
def revenue_summary(request):
    since = None
    since_param = request.query_params.get("since")
    if since_param:
        since = parse_datetime(since_param)
        if since is None:
            return Response(
                {"error": ErrorCodes.INVALID_INPUT, "detail": "since must be an ISO 8601 datetime"},
                status=status.HTTP_400_BAD_REQUEST,
            )

    result = container.settlement_service().revenue_summary(since=since)
    data = RevenueSummarySerializer({"since": since, "currencies": result.value}).data
    return Response(data, status=status.HTTP_200_OK)

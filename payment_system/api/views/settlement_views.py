import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from infrastructure.container import container
from marketplace.services import ErrorCodes
from payment_system.api.serializers.request_serializers import SettlementRequestSerializer
from payment_system.api.serializers.response_serializers import (
    BuyerSettlementSerializer,
    ErrorResponseSerializer,
    SettlementRecordSerializer,
)
from payment_system.domain.services.settlement_service import SettlementOutcome, decline_message
from payment_system.models import SettlementRecord


logger = logging.getLogger(__name__)

# Service error code -> HTTP status
ERROR_STATUS = {
    ErrorCodes.UNKNOWN_OUTCOME: status.HTTP_202_ACCEPTED,
    ErrorCodes.SETTLEMENT_IN_PROGRESS: status.HTTP_202_ACCEPTED,
    ErrorCodes.CHARGE_FAILED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCodes.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCodes.NOT_ORDER_OWNER: status.HTTP_403_FORBIDDEN,
    ErrorCodes.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.SETTLEMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.SELLER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.INVALID_AMOUNT: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.INVALID_RATE: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.INVALID_ORDER_STATE: status.HTTP_400_BAD_REQUEST,
}

PENDING_MESSAGE = "Your payment is being confirmed. We will update your order shortly."


def error_response(result):
    body = {"error": result.error, "detail": result.error_detail}
    if isinstance(result.value, SettlementOutcome):
        body["settlement"] = BuyerSettlementSerializer(result.value).data
    return Response(body, status=ERROR_STATUS.get(result.error, status.HTTP_500_INTERNAL_SERVER_ERROR))


@extend_schema(
    operation_id="payment_settle_order",
    summary="Pay for an order",
    description="""
    **What it receives:**
    - `order_id`: Order to pay for (caller must be the buyer)
    - `payment_method_ref`: Payment method to charge

    **What it returns:**
    - 200 when the charge succeeded (or the order was already paid)
    - 202 while the outcome is being confirmed
    - 402 with a specific message when the charge was declined; the buyer may retry
    """,
    request=SettlementRequestSerializer,
    responses={
        200: OpenApiResponse(response=BuyerSettlementSerializer, description="Order paid"),
        202: OpenApiResponse(response=ErrorResponseSerializer, description="Outcome pending"),
        400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid request or order state"),
        402: OpenApiResponse(response=ErrorResponseSerializer, description="Charge declined"),
        403: OpenApiResponse(response=ErrorResponseSerializer, description="Not the order's buyer"),
        404: OpenApiResponse(response=ErrorResponseSerializer, description="Order not found"),
    },
    tags=["Payments - Settlement"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def settle_order(request):
    serializer = SettlementRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": ErrorCodes.VALIDATION_ERROR, "detail": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )
    data = serializer.validated_data

    order_result = container.order_service().get_order(data["order_id"], request.user)
    if not order_result.ok:
        return error_response(order_result)
    order = order_result.value
    if order.buyer_id != request.user.pk:
        return Response(
            {"error": ErrorCodes.PERMISSION_DENIED, "detail": "Only the buyer can pay for this order"},
            status=status.HTTP_403_FORBIDDEN,
        )

    # The seller's account is resolved here and handed to settlement explicitly
    account_result = container.seller_service().get_account(order.seller_id)
    if not account_result.ok:
        return error_response(account_result)

    result = container.settlement_service().settle_order(order.id, account_result.value, data["payment_method_ref"])
    if not result.ok:
        return error_response(result)

    outcome = result.value
    if outcome.requires_attention:
        logger.info(f"Order {order.id} paid; payout flagged for operators")
    return Response(BuyerSettlementSerializer(outcome).data, status=status.HTTP_200_OK)


@extend_schema(
    operation_id="payment_get_settlement",
    summary="Get an order's settlement",
    description="""
    **What it receives:**
    - `order_id` (UUID in URL); caller must be the buyer, the seller or staff

    **What it returns:**
    - Buyers: payment status of the latest attempt
    - Sellers and staff: the full ledger record
    """,
    responses={
        200: OpenApiResponse(response=SettlementRecordSerializer, description="Latest settlement attempt"),
        403: OpenApiResponse(response=ErrorResponseSerializer, description="No access to the order"),
        404: OpenApiResponse(response=ErrorResponseSerializer, description="Order or settlement not found"),
    },
    tags=["Payments - Settlement"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def get_settlement(request, order_id):
    order_result = container.order_service().get_order(order_id, request.user)
    if not order_result.ok:
        return error_response(order_result)
    order = order_result.value

    result = container.settlement_service().get_settlement(order.id)
    if not result.ok:
        return error_response(result)
    record = result.value

    if request.user.is_staff or request.user.pk == order.seller_id:
        return Response(SettlementRecordSerializer(record).data, status=status.HTTP_200_OK)

    if record.outcome == SettlementRecord.OUTCOME_CHARGE_FAILED:
        message = decline_message(record.failure_code)
    elif record.outcome in (SettlementRecord.OUTCOME_PROCESSING, SettlementRecord.OUTCOME_CHARGE_UNKNOWN):
        message = PENDING_MESSAGE
    else:
        message = "Payment complete"
    return Response(
        BuyerSettlementSerializer(SettlementOutcome(record=record, message=message)).data, status=status.HTTP_200_OK
    )

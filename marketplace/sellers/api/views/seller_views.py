from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from infrastructure.container import container
from marketplace.api.serializers import (
    ErrorResponseSerializer,
    OnboardingRequestSerializer,
    PayoutDestinationRequestSerializer,
    SellerAccountSerializer,
)
from marketplace.services import ErrorCodes


@extend_schema(
    operation_id="sellers_enroll",
    summary="Enroll as a seller",
    description="""
    **What it receives:**
    - Authentication token

    **What it returns:**
    - The caller's seller account (created on first call)
    """,
    request=None,
    responses={
        200: OpenApiResponse(response=SellerAccountSerializer, description="Seller account"),
    },
    tags=["Marketplace - Sellers"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def enroll_seller(request):
    result = container.seller_service().enroll(request.user)
    return Response(SellerAccountSerializer(result.value).data, status=status.HTTP_200_OK)


@extend_schema(
    operation_id="sellers_me",
    summary="Get own seller account",
    responses={
        200: OpenApiResponse(response=SellerAccountSerializer, description="Seller account"),
        404: OpenApiResponse(response=ErrorResponseSerializer, description="Caller is not a seller"),
    },
    tags=["Marketplace - Sellers"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def my_seller_account(request):
    result = container.seller_service().get_account(request.user.pk)
    if not result.ok:
        return Response({"error": result.error, "detail": result.error_detail}, status=status.HTTP_404_NOT_FOUND)
    return Response(SellerAccountSerializer(result.value).data, status=status.HTTP_200_OK)


@extend_schema(
    operation_id="sellers_payout_destination",
    summary="Register payout destination",
    description="""
    **What it receives:**
    - `payout_destination`: Connected account id (acct_...)

    **What it returns:**
    - Updated seller account. Payouts waiting on a destination are retried on the next sweep.
    """,
    request=PayoutDestinationRequestSerializer,
    responses={
        200: OpenApiResponse(response=SellerAccountSerializer, description="Destination registered"),
        400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid destination"),
    },
    tags=["Marketplace - Sellers"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def register_payout_destination(request):
    serializer = PayoutDestinationRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": ErrorCodes.VALIDATION_ERROR, "detail": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )

    result = container.seller_service().register_payout_destination(
        request.user, serializer.validated_data["payout_destination"]
    )
    if not result.ok:
        return Response({"error": result.error, "detail": result.error_detail}, status=status.HTTP_400_BAD_REQUEST)
    return Response(SellerAccountSerializer(result.value).data, status=status.HTTP_200_OK)


@extend_schema(
    operation_id="sellers_onboarding",
    summary="Create a connected account for payouts",
    description="""
    **What it receives:**
    - `email`: E-mail for the connected account
    - `country`: ISO country code (default US)

    **What it returns:**
    - Seller account with the new connected account as payout destination
    """,
    request=OnboardingRequestSerializer,
    responses={
        200: OpenApiResponse(response=SellerAccountSerializer, description="Connected account created"),
        400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid request"),
        502: OpenApiResponse(response=ErrorResponseSerializer, description="Payment provider error"),
    },
    tags=["Marketplace - Sellers"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def onboard_connected_account(request):
    serializer = OnboardingRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": ErrorCodes.VALIDATION_ERROR, "detail": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )

    result = container.seller_service().onboard_connected_account(
        request.user, serializer.validated_data["email"], serializer.validated_data["country"]
    )
    if not result.ok:
        http_status = (
            status.HTTP_502_BAD_GATEWAY
            if result.error == ErrorCodes.PAYMENT_PROVIDER_ERROR
            else status.HTTP_400_BAD_REQUEST
        )
        return Response({"error": result.error, "detail": result.error_detail}, status=http_status)
    return Response(SellerAccountSerializer(result.value).data, status=status.HTTP_200_OK)

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response

from infrastructure.container import container
from marketplace.api.serializers import (
    CreateOrderRequestSerializer,
    ErrorResponseSerializer,
    OrderDetailSerializer,
    OrderListResponseSerializer,
    OrderSerializer,
    UpdateOrderStatusRequestSerializer,
)
from marketplace.services import ErrorCodes, OrderService

# Service error code -> HTTP status
ERROR_STATUS = {
    ErrorCodes.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.SELLER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.NOT_ORDER_OWNER: status.HTTP_403_FORBIDDEN,
    ErrorCodes.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCodes.INVALID_AMOUNT: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.INVALID_ORDER_STATE: status.HTTP_409_CONFLICT,
}


def error_response(result):
    return Response(
        {"error": result.error, "detail": result.error_detail},
        status=ERROR_STATUS.get(result.error, status.HTTP_500_INTERNAL_SERVER_ERROR),
    )


class OrderViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated]

    def get_service(self) -> OrderService:
        return container.order_service()

    def get_permissions(self):
        if self.action == "update_status":
            return [IsAdminUser()]
        return super().get_permissions()

    @extend_schema(
        operation_id="orders_list",
        summary="List user's orders",
        description="""
        **What it receives:**
        - Authentication token
        - Optional role (`buyer` or `seller`, default `buyer`)
        - Optional status filter (query param)
        - Pagination parameters (page, page_size)

        **What it returns:**
        - Paginated list of orders where user has the given role
        - Total count and page information
        """,
        parameters=[
            OpenApiParameter(name="role", type=str, description="buyer (default) or seller"),
            OpenApiParameter(name="status", type=str, description="Filter by order status"),
            OpenApiParameter(name="page", type=int, description="Page number (default: 1)"),
            OpenApiParameter(name="page_size", type=int, description="Items per page (default: 20)"),
        ],
        responses={
            200: OpenApiResponse(response=OrderListResponseSerializer, description="Orders retrieved successfully"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid query parameters"),
        },
        tags=["Marketplace - Orders"],
    )
    def list(self, request):
        service = self.get_service()

        try:
            page = int(request.query_params.get("page", 1))
            page_size = min(int(request.query_params.get("page_size", 20)), 100)
        except ValueError:
            return Response(
                {"error": ErrorCodes.INVALID_INPUT, "detail": "page and page_size must be integers"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        result = service.list_orders(
            request.user,
            role=request.query_params.get("role", "buyer"),
            status=request.query_params.get("status"),
            page=page,
            page_size=page_size,
        )
        if not result.ok:
            return error_response(result)

        response_data = dict(result.value)
        response_data["results"] = OrderSerializer(result.value["results"], many=True).data
        return Response(response_data, status=status.HTTP_200_OK)

    @extend_schema(
        operation_id="orders_retrieve",
        summary="Get order details",
        description="""
        **What it receives:**
        - `order_id` (UUID in URL): Order to retrieve
        - Authentication token (must be order buyer, seller or staff)

        **What it returns:**
        - Order details with the status history
        """,
        responses={
            200: OpenApiResponse(response=OrderDetailSerializer, description="Order retrieved successfully"),
            403: OpenApiResponse(response=ErrorResponseSerializer, description="Not order owner"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Order not found"),
        },
        tags=["Marketplace - Orders"],
    )
    def retrieve(self, request, pk=None):
        result = self.get_service().get_order(pk, request.user)
        if not result.ok:
            return error_response(result)

        return Response(OrderDetailSerializer(result.value).data, status=status.HTTP_200_OK)

    @extend_schema(
        operation_id="orders_create",
        summary="Place an order",
        description="""
        **What it receives:**
        - `seller_id`: The selling user (must be enrolled as a seller)
        - `total_amount`: Order total, at most two decimal places
        - `shipping_address`: Address string or object
        - `payment_method`: Payment method reference

        **What it returns:**
        - The created order in `pending` status
        """,
        request=CreateOrderRequestSerializer,
        responses={
            201: OpenApiResponse(response=OrderSerializer, description="Order created"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid order data"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Seller not found"),
        },
        tags=["Marketplace - Orders"],
    )
    def create(self, request):
        serializer = CreateOrderRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": ErrorCodes.VALIDATION_ERROR, "detail": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        data = serializer.validated_data
        result = self.get_service().create_order(
            buyer=request.user,
            seller_id=data["seller_id"],
            total_amount=data["total_amount"],
            shipping_address=data["shipping_address"],
            payment_method=data["payment_method"],
        )
        if not result.ok:
            return error_response(result)

        return Response(OrderSerializer(result.value).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="orders_update_status",
        summary="Change order status (staff only)",
        description="""
        **What it receives:**
        - `order_id` (UUID in URL)
        - `status`: Target status
        - `reason`: Optional audit note

        **What it returns:**
        - The updated order. Same-status updates are no-ops.
        """,
        request=UpdateOrderStatusRequestSerializer,
        responses={
            200: OpenApiResponse(response=OrderSerializer, description="Status updated"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Order not found"),
            409: OpenApiResponse(response=ErrorResponseSerializer, description="Transition not allowed"),
        },
        tags=["Marketplace - Orders"],
    )
    @action(detail=True, methods=["post"], url_path="status")
    def update_status(self, request, pk=None):
        serializer = UpdateOrderStatusRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": ErrorCodes.VALIDATION_ERROR, "detail": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        reason = serializer.validated_data["reason"] or f"Changed by staff user {request.user.pk}"
        result = self.get_service().update_order_status(pk, serializer.validated_data["status"], reason)
        if not result.ok:
            return error_response(result)

        return Response(OrderSerializer(result.value).data, status=status.HTTP_200_OK)

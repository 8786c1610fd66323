import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status

from order_engine.config import settings
from order_engine.database import AsyncSessionLocal
from order_engine.presentation.schemas import (
    BulkCancelOrderItemsRequest,
    BulkUpdateOrderItemStatusRequest,
    CancelRequest,
    CanCancelResponse,
    CreateOrderFromCartRequest,
    CreateOrderRequest,
    ErrorResponse,
    NextStatusesResponse,
    OrderItemResponse,
    OrderResponse,
    OrderStatsResponse,
    PagedOrdersResponse,
    UpdateOrderItemStatusRequest,
)
from order_engine.application.create_order import (
    CreateOrderDTO, CreateOrderFromCartDTO, CreateOrderFromCartUseCase, CreateOrderUseCase, OrderLineDTO
)
from order_engine.application.change_status import (
    BulkCancelOrderItemsUseCase,
    BulkUpdateOrderItemStatusUseCase,
    CancelOrderItemUseCase,
    CancelOrderUseCase,
    UpdateOrderItemStatusUseCase,
)
from order_engine.application.get_order import (
    CanCancelOrderUseCase,
    GetOrderItemUseCase,
    GetOrderStatsUseCase,
    GetOrderUseCase,
    GetSellerOrderItemsUseCase,
    GetValidNextStatusesUseCase,
    ListOrdersUseCase,
    SearchOrdersUseCase,
)
from order_engine.domain.exceptions import (
    ConflictError,
    DomainException,
    EmptyCartError,
    ForbiddenError,
    InsufficientStockError,
    InvalidFilterError,
    InvalidStatusTransitionError,
    NotFoundError,
    PersistenceError,
    ProductNotFoundError,
)
from order_engine.domain.models import OrderFilter, Role, Viewer
from order_engine.domain.status_machine import OrderItemStatus
from order_engine.infrastructure.unit_of_work import UnitOfWork


logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def get_unit_of_work() -> UnitOfWork:
    return UnitOfWork(AsyncSessionLocal)


async def get_viewer(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> Viewer:
    """Identity is resolved upstream; the gateway forwards it in headers"""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    try:
        role = Role.parse(x_user_role or Role.BUYER.value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Unknown role: {x_user_role}")
    return Viewer(user_id=x_user_id, role=role)


async def get_seller(viewer: Viewer = Depends(get_viewer)) -> Viewer:
    if viewer.role != Role.SELLER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Seller role required")
    return viewer


def to_http_error(e: DomainException) -> HTTPException:
    if isinstance(e, (ProductNotFoundError, InsufficientStockError, EmptyCartError,
                      InvalidStatusTransitionError, InvalidFilterError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, PersistenceError):
        logger.error(f"Persistence failure: {e}")
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service unavailable")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# Orders


@router.post(
    "/orders",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    viewer: Viewer = Depends(get_viewer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Create an order from an explicit item list"""
    use_case = CreateOrderUseCase(uow, settings.TAX_RATE, settings.ORDER_NUMBER_PREFIX)
    try:
        dto = CreateOrderDTO(
            buyer_id=viewer.user_id,
            items=[OrderLineDTO(product_id=line.product_id, quantity=line.quantity) for line in request.items],
            shipping_address=request.shipping_address
        )
        order = await use_case(dto)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e)


@router.post(
    "/orders/from-cart",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    status_code=status.HTTP_201_CREATED
)
async def create_order_from_cart(
    request: CreateOrderFromCartRequest,
    viewer: Viewer = Depends(get_viewer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Create an order from the buyer's current cart"""
    use_case = CreateOrderFromCartUseCase(uow, settings.TAX_RATE, settings.ORDER_NUMBER_PREFIX)
    try:
        order = await use_case(CreateOrderFromCartDTO(
            buyer_id=viewer.user_id,
            shipping_address=request.shipping_address
        ))
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e)


@router.get("/orders", response_model=PagedOrdersResponse, responses=ERROR_RESPONSES)
async def list_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=settings.MAX_PAGE_SIZE),
    order_status: Optional[OrderItemStatus] = Query(None, alias="status"),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    search_term: Optional[str] = Query(None, max_length=100),
    viewer: Viewer = Depends(get_viewer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Orders visible to the caller, newest first"""
    order_filter = OrderFilter(
        page=page,
        page_size=page_size,
        status=order_status,
        from_date=from_date,
        to_date=to_date,
        search_term=search_term
    )
    try:
        result = await ListOrdersUseCase(uow)(viewer, order_filter)
        return PagedOrdersResponse.from_domain(result)
    except DomainException as e:
        raise to_http_error(e)


@router.get("/orders/stats", response_model=OrderStatsResponse, responses=ERROR_RESPONSES)
async def get_order_stats(
    viewer: Viewer = Depends(get_viewer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        stats = await GetOrderStatsUseCase(uow)(viewer)
        return OrderStatsResponse.from_domain(stats)
    except DomainException as e:
        raise to_http_error(e)


@router.get("/orders/search", response_model=list[OrderResponse], responses=ERROR_RESPONSES)
async def search_orders(
    order_number: str = Query(..., min_length=1, max_length=50),
    viewer: Viewer = Depends(get_viewer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Search by order number fragment"""
    try:
        orders = await SearchOrdersUseCase(uow)(order_number, viewer)
        return [OrderResponse.from_domain(order) for order in orders]
    except DomainException as e:
        raise to_http_error(e)


# Order items (declared before /orders/{order_id} routes that could shadow them)


@router.put("/orders/items/bulk-status", response_model=list[OrderItemResponse], responses=ERROR_RESPONSES)
async def bulk_update_order_item_status(
    request: BulkUpdateOrderItemStatusRequest,
    seller: Viewer = Depends(get_seller),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Move every listed item to the target status, or none of them"""
    try:
        items = await BulkUpdateOrderItemStatusUseCase(uow)(request.order_item_ids, request.status, seller.user_id)
        return [OrderItemResponse.from_domain(item) for item in items]
    except DomainException as e:
        raise to_http_error(e)


@router.post(
    "/orders/items/bulk-cancel",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=ERROR_RESPONSES
)
async def bulk_cancel_order_items(
    request: BulkCancelOrderItemsRequest,
    seller: Viewer = Depends(get_seller),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Cancel every listed item and restore its stock, or change nothing"""
    try:
        await BulkCancelOrderItemsUseCase(uow)(request.order_item_ids, seller.user_id, request.reason)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except DomainException as e:
        raise to_http_error(e)


@router.get("/orders/items/{order_item_id}", response_model=OrderItemResponse, responses=ERROR_RESPONSES)
async def get_order_item(
    order_item_id: str,
    seller: Viewer = Depends(get_seller),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        item = await GetOrderItemUseCase(uow)(order_item_id, seller.user_id)
        return OrderItemResponse.from_domain(item)
    except DomainException as e:
        raise to_http_error(e)


@router.get(
    "/orders/items/{order_item_id}/next-statuses",
    response_model=NextStatusesResponse,
    responses=ERROR_RESPONSES
)
async def get_valid_next_statuses(
    order_item_id: str,
    viewer: Viewer = Depends(get_viewer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        statuses = await GetValidNextStatusesUseCase(uow)(order_item_id)
        return NextStatusesResponse(order_item_id=order_item_id, valid_next_statuses=statuses)
    except DomainException as e:
        raise to_http_error(e)


@router.put("/orders/items/{order_item_id}/status", response_model=OrderItemResponse, responses=ERROR_RESPONSES)
async def update_order_item_status(
    order_item_id: str,
    request: UpdateOrderItemStatusRequest,
    seller: Viewer = Depends(get_seller),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        item = await UpdateOrderItemStatusUseCase(uow)(order_item_id, request.status, seller.user_id)
        return OrderItemResponse.from_domain(item)
    except DomainException as e:
        raise to_http_error(e)


@router.post(
    "/orders/items/{order_item_id}/cancel",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=ERROR_RESPONSES
)
async def cancel_order_item(
    order_item_id: str,
    request: Optional[CancelRequest] = None,
    seller: Viewer = Depends(get_seller),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        await CancelOrderItemUseCase(uow)(order_item_id, seller.user_id, request.reason if request else None)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except DomainException as e:
        raise to_http_error(e)


# Single order


@router.get("/orders/{order_id}", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def get_order(
    order_id: str,
    viewer: Viewer = Depends(get_viewer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Get an order; sellers only see their own lines"""
    try:
        order = await GetOrderUseCase(uow)(order_id, viewer)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e)


@router.get("/orders/{order_id}/can-cancel", response_model=CanCancelResponse, responses=ERROR_RESPONSES)
async def can_cancel_order(
    order_id: str,
    viewer: Viewer = Depends(get_viewer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        can_cancel = await CanCancelOrderUseCase(uow)(order_id)
        return CanCancelResponse(order_id=order_id, can_cancel=can_cancel)
    except DomainException as e:
        raise to_http_error(e)


@router.post(
    "/orders/{order_id}/cancel",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=ERROR_RESPONSES
)
async def cancel_order(
    order_id: str,
    request: Optional[CancelRequest] = None,
    viewer: Viewer = Depends(get_viewer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        await CancelOrderUseCase(uow)(order_id, viewer, request.reason if request else None)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except DomainException as e:
        raise to_http_error(e)


@router.get("/orders/{order_id}/items", response_model=list[OrderItemResponse], responses=ERROR_RESPONSES)
async def get_seller_order_items(
    order_id: str,
    seller: Viewer = Depends(get_seller),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """The calling seller's lines of an order"""
    try:
        items = await GetSellerOrderItemsUseCase(uow)(order_id, seller.user_id)
        return [OrderItemResponse.from_domain(item) for item in items]
    except DomainException as e:
        raise to_http_error(e)

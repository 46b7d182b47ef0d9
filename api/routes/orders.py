"""
Order API routes - thin presentation layer over the order services
"""
from fastapi import APIRouter, Depends, Query, status

from api.dependencies import (
    get_assignment_coordinator,
    get_customer_id,
    get_order_service,
)
from application.dtos.orders import (
    AcceptOrderRequest,
    CreateOrderRequest,
    DriverNoteRequest,
    OrderListResponse,
    OrderResponse,
    UpdateStatusRequest,
)
from application.services.assignment_service import AssignmentCoordinator
from application.services.order_service import OrderApplicationService
from core.response import Response as ApiResponse, success_response


router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)


@router.post(
    "",
    summary="Create order",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[OrderResponse],
)
async def create_order(
    payload: CreateOrderRequest,
    customer_id: str = Depends(get_customer_id),
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    Create a pending, unpaid order.

    Pricing is computed server-side from the base fare, surcharge and fees;
    an optional coupon code is validated and applied before tax.
    """
    order = await service.create_order(customer_id, payload)
    return success_response(data=OrderResponse.from_entity(order), message="Order created")


@router.get("/available", summary="List claimable orders", response_model=ApiResponse[OrderListResponse])
async def list_available_orders(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: OrderApplicationService = Depends(get_order_service),
):
    """Pending, unassigned, paid orders whose claim window is still open."""
    orders, total = await service.list_available_orders(limit, offset)
    data = OrderListResponse(
        items=[OrderResponse.from_entity(o) for o in orders],
        total=total,
        limit=limit,
        offset=offset,
    )
    return success_response(data=data)


@router.get("/{order_id}", summary="Get order", response_model=ApiResponse[OrderResponse])
async def get_order(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.get_order(order_id)
    return success_response(data=OrderResponse.from_entity(order))


@router.post("/{order_id}/accept", summary="Accept order", response_model=ApiResponse[OrderResponse])
async def accept_order(
    order_id: str,
    payload: AcceptOrderRequest,
    coordinator: AssignmentCoordinator = Depends(get_assignment_coordinator),
):
    """
    Claim an order for a driver.

    Exactly one of any number of concurrent callers wins; the others get
    409 (conflict or invalid state) or 403 when the driver is not eligible.
    """
    order = await coordinator.accept(order_id, payload.driver_id)
    return success_response(data=OrderResponse.from_entity(order), message="Order accepted")


@router.post("/{order_id}/status", summary="Update order status", response_model=ApiResponse[OrderResponse])
async def update_order_status(
    order_id: str,
    payload: UpdateStatusRequest,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.update_status(order_id, payload.driver_id, payload.status)
    return success_response(data=OrderResponse.from_entity(order), message="Order status updated")


@router.put("/{order_id}/driver-note", summary="Update driver note", response_model=ApiResponse[OrderResponse])
async def update_driver_note(
    order_id: str,
    payload: DriverNoteRequest,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.update_driver_note(order_id, payload.driver_id, payload.note)
    return success_response(data=OrderResponse.from_entity(order), message="Driver note updated")

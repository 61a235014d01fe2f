"""Order history API routes"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..database.orders import OrderRepository
from ..errors import InvalidStatusTransitionError, OrderNotFoundError
from ..models.order import Order, OrderStatistics, OrderStatus, UpdateOrderStatusRequest
from .dependencies import get_order_repository

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.get("/{user_id}", response_model=list[Order])
async def get_order_history(
    user_id: str,
    status: Optional[OrderStatus] = Query(None, description="Filter by status"),
    repository: OrderRepository = Depends(get_order_repository),
):
    """List a user's orders, newest first"""
    if status:
        return await repository.get_orders_by_status(user_id, status)
    return await repository.get_order_history(user_id)


@router.get("/{user_id}/recent", response_model=list[Order])
async def get_recent_orders(
    user_id: str,
    limit: int = Query(10, ge=1, le=100, description="Max results"),
    repository: OrderRepository = Depends(get_order_repository),
):
    return await repository.get_recent_orders(user_id, limit)


@router.get("/{user_id}/statistics", response_model=OrderStatistics)
async def get_order_statistics(
    user_id: str,
    repository: OrderRepository = Depends(get_order_repository),
):
    """Order count, total spent and average order value"""
    return await repository.get_order_statistics(user_id)


@router.get("/{user_id}/{order_id}", response_model=Order)
async def get_order(
    user_id: str,
    order_id: str,
    repository: OrderRepository = Depends(get_order_repository),
):
    """Get order details"""
    order = await repository.get_order_by_id(user_id, order_id)
    if not order:
        raise OrderNotFoundError(user_id, order_id)
    return order


@router.patch("/{user_id}/{order_id}/status", response_model=Order)
async def update_order_status(
    user_id: str,
    order_id: str,
    request: UpdateOrderStatusRequest,
    repository: OrderRepository = Depends(get_order_repository),
):
    """Move an order forward to shipped or delivered"""
    try:
        order = await repository.update_order_status(user_id, order_id, request.status)
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not order:
        raise OrderNotFoundError(user_id, order_id)
    return order


@router.post("/{user_id}/{order_id}/reorder", response_model=Order)
async def reorder(
    user_id: str,
    order_id: str,
    repository: OrderRepository = Depends(get_order_repository),
):
    """Place a new order with the same items and address"""
    order = await repository.create_reorder(user_id, order_id)
    if not order:
        raise OrderNotFoundError(user_id, order_id)
    return order


@router.delete("/{user_id}/{order_id}")
async def delete_order(
    user_id: str,
    order_id: str,
    repository: OrderRepository = Depends(get_order_repository),
):
    if not await repository.delete_order(user_id, order_id):
        raise OrderNotFoundError(user_id, order_id)
    return {"message": "Order deleted"}


@router.delete("/{user_id}")
async def clear_order_history(
    user_id: str,
    repository: OrderRepository = Depends(get_order_repository),
):
    await repository.clear_order_history(user_id)
    return {"message": "Order history cleared"}

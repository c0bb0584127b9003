"""Moderation endpoints: the admin side of the order lifecycle."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status

from reservations.cache import invalidate_slots_cache
from reservations.deps import (
    CurrentUser,
    UsersClient,
    can_admin_delete_order,
    can_audit_orders,
    can_moderate_orders,
    get_users_client,
)
from reservations.routers.orders import enrich_orders
from reservations.scheduler import booking_scheduler
from reservations.schemas import OrderEnriched, OrderResponse, Page, PageParams

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.get("/pending", response_model=Page[OrderEnriched])
async def list_pending_orders(
    params: PageParams = Depends(),
    current_user: CurrentUser = Depends(can_audit_orders),
    users_client: UsersClient = Depends(get_users_client),
) -> Page[OrderEnriched]:
    page = await booking_scheduler.find_no_audit_order(params)
    return Page[OrderEnriched](
        items=await enrich_orders(page.items, current_user, users_client),
        total=page.total,
        page=page.page,
        page_size=page.page_size,
    )


@router.get("/audited", response_model=list[OrderEnriched])
async def list_audited_orders(
    current_user: CurrentUser = Depends(can_audit_orders),
    users_client: UsersClient = Depends(get_users_client),
) -> list[OrderEnriched]:
    orders = await booking_scheduler.find_audit_order()
    return await enrich_orders(orders, current_user, users_client)


@router.get(
    "/range",
    response_model=list[OrderResponse],
    dependencies=[Depends(can_audit_orders)],
)
async def list_venue_orders_in_range(
    venue_id: int,
    start: datetime,
    end: datetime,
) -> list[OrderResponse]:
    """Active orders of a venue overlapping [start, end)."""
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end must be after start",
        )
    return await booking_scheduler.find_date_order(venue_id, start, end)


@router.post(
    "/{order_id}/approve",
    response_model=OrderResponse,
    dependencies=[Depends(can_moderate_orders)],
)
async def approve_order(order_id: int) -> OrderResponse:
    return await booking_scheduler.confirm_order(order_id)


@router.post(
    "/{order_id}/reject",
    response_model=OrderResponse,
    dependencies=[Depends(can_moderate_orders)],
)
async def reject_order(order_id: int) -> OrderResponse:
    order = await booking_scheduler.reject_order(order_id)
    await invalidate_slots_cache(order.venue_id)
    return order


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(can_admin_delete_order)],
)
async def delete_order(order_id: int) -> None:
    order = await booking_scheduler.find_by_id(order_id)
    deleted = await booking_scheduler.del_order(order_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Order not found"
        )
    if order is not None:
        await invalidate_slots_cache(order.venue_id)

import asyncio
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from loguru import logger

from reservations.cache import get_slots_cache, invalidate_slots_cache, set_slots_cache
from reservations.crud import venue_crud
from reservations.deps import (
    CurrentUser,
    UsersClient,
    can_cancel_order,
    can_read_order,
    can_write_order,
    get_current_user,
    get_users_client,
    is_order_admin,
)
from reservations.errors import ORDER_NOT_FOUND, VENUE_NOT_FOUND, NotFoundError
from reservations.scheduler import booking_scheduler
from reservations.schemas import (
    OrderCreate,
    OrderEnriched,
    OrderResponse,
    OrderSlot,
    OrderUpdate,
    Page,
    PageParams,
)
from reservations.scopes import OrderScope

router = APIRouter(prefix="/orders", tags=["orders"])


# ---------------------------------------------------------------------------
# Enrichment helper
# ---------------------------------------------------------------------------


async def enrich_orders(
    orders: list,
    current_user: CurrentUser,
    users_client: UsersClient,
) -> list[OrderEnriched]:
    """
    Attach venue names (local catalog) and customer names (users-ms).
    The users-ms call degrades gracefully: names become None on error.
    """
    if not orders:
        return []

    parsed = [OrderResponse.model_validate(o, from_attributes=True) for o in orders]

    venue_names, users_raw = await asyncio.gather(
        venue_crud.names_by_ids({o.venue_id for o in parsed}),
        users_client.get_by_ids({o.user_id for o in parsed}, current_user),
    )
    user_map: dict[str, dict] = {
        u["id"]: {"username": u.get("username"), "full_name": u.get("full_name")}
        for u in users_raw
    }

    result = []
    for o in parsed:
        customer = user_map.get(str(o.user_id), {})
        result.append(
            OrderEnriched(
                **o.model_dump(),
                venue_name=venue_names.get(o.venue_id),
                customer_username=customer.get("username"),
                customer_full_name=customer.get("full_name"),
            )
        )
    return result


def _owner_filter(current_user: CurrentUser, *admin_scopes: str) -> UUID | None:
    """None (no ownership filter) for admins, the caller's id otherwise."""
    if is_order_admin(current_user, *admin_scopes):
        return None
    return current_user.id


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/slots", response_model=list[OrderSlot])
async def get_venue_slots(
    venue_name: str,
    day: date = Query(alias="date"),
    _: CurrentUser = Depends(get_current_user),
) -> list[OrderSlot]:
    """
    Occupied time windows of a venue on one day.
    Any authenticated user can call this. The response carries no user identity.
    """
    venue = await venue_crud.find_by_name(venue_name)
    if venue is None:
        raise NotFoundError(VENUE_NOT_FOUND)

    cached = await get_slots_cache(venue.id, day.isoformat())
    if cached is not None:
        logger.debug("Cache hit for slots: venue_id={} day={}", venue.id, day)
        return [OrderSlot(**s) for s in cached]

    logger.debug("Cache miss for slots: venue_id={} day={}", venue.id, day)
    slots = await booking_scheduler.find_occupied_slots(venue.id, day)
    await set_slots_cache(
        venue.id, day.isoformat(), [s.model_dump(mode="json") for s in slots]
    )
    return slots


@router.get("/", response_model=Page[OrderEnriched])
async def list_my_orders(
    params: PageParams = Depends(),
    current_user: CurrentUser = Depends(can_read_order),
    users_client: UsersClient = Depends(get_users_client),
) -> Page[OrderEnriched]:
    page = await booking_scheduler.find_user_order(current_user.id, params)
    return Page[OrderEnriched](
        items=await enrich_orders(page.items, current_user, users_client),
        total=page.total,
        page=page.page,
        page_size=page.page_size,
    )


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def submit_order(
    payload: OrderCreate,
    current_user: CurrentUser = Depends(can_write_order),
) -> OrderResponse:
    order = await booking_scheduler.submit(
        venue_name=payload.venue_name,
        start_time=payload.start_time,
        hours=payload.hours,
        user_id=current_user.id,
    )
    await invalidate_slots_cache(order.venue_id)
    return order


@router.get("/{order_id}", response_model=OrderEnriched)
async def get_order(
    order_id: int,
    current_user: CurrentUser = Depends(can_read_order),
    users_client: UsersClient = Depends(get_users_client),
) -> OrderEnriched:
    order = await booking_scheduler.find_by_id(
        order_id, user_id=_owner_filter(current_user, OrderScope.ADMIN_READ)
    )
    if not order:
        raise NotFoundError(ORDER_NOT_FOUND)

    results = await enrich_orders([order], current_user, users_client)
    return results[0]


@router.put("/{order_id}", response_model=OrderResponse)
async def modify_order(
    order_id: int,
    payload: OrderUpdate,
    current_user: CurrentUser = Depends(can_write_order),
) -> OrderResponse:
    owner = _owner_filter(current_user, OrderScope.ADMIN_WRITE)
    previous = await booking_scheduler.find_by_id(order_id, user_id=owner)
    if previous is None:
        raise NotFoundError(ORDER_NOT_FOUND)

    updated = await booking_scheduler.modify_order(
        order_id=order_id,
        venue_name=payload.venue_name,
        start_time=payload.start_time,
        hours=payload.hours,
        user_id=owner,
    )
    await invalidate_slots_cache(previous.venue_id, updated.venue_id)
    return updated


@router.post("/{order_id}/finish", response_model=OrderResponse)
async def finish_order(
    order_id: int,
    current_user: CurrentUser = Depends(can_write_order),
) -> OrderResponse:
    order = await booking_scheduler.finish_order(
        order_id, user_id=_owner_filter(current_user, OrderScope.ADMIN_WRITE)
    )
    await invalidate_slots_cache(order.venue_id)
    return order


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_order(
    order_id: int,
    current_user: CurrentUser = Depends(can_cancel_order),
) -> None:
    order = await booking_scheduler.cancel_order(
        order_id, user_id=_owner_filter(current_user, OrderScope.ADMIN_DELETE)
    )
    await invalidate_slots_cache(order.venue_id)

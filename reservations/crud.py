from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from uuid import UUID

from loguru import logger
from tortoise.exceptions import IntegrityError
from tortoise.transactions import in_transaction

from reservations.errors import VENUE_NOT_FOUND, ConflictError, NotFoundError
from reservations.models import ACTIVE_STATES, Order, OrderState, Venue
from reservations.schemas import (
    OrderResponse,
    Page,
    PageParams,
    VenueCreate,
    VenueResponse,
    VenueUpdate,
)


def _venue_fields(payload: VenueCreate) -> dict:
    data = payload.model_dump()
    data["open_time"] = payload.open_time.strftime("%H:%M")
    data["close_time"] = payload.close_time.strftime("%H:%M")
    return data


class VenueCRUD:
    """Venue catalog. Read-only from the scheduler's point of view."""

    async def find_by_name(self, name: str) -> Venue | None:
        return await Venue.get_or_none(name=name)

    async def find_by_id(self, venue_id: int) -> Venue | None:
        return await Venue.get_or_none(id=venue_id)

    async def lock(self, venue_id: int) -> Venue | None:
        """
        Row-lock the venue for the rest of the current transaction and
        return its current row, or None if it was deleted meanwhile.
        Serializes every writer of this venue's timeline on databases
        that support SELECT ... FOR UPDATE.
        """
        return await Venue.filter(id=venue_id).select_for_update().first()

    async def name_available(self, name: str, exclude_id: int | None = None) -> bool:
        qs = Venue.filter(name=name)
        if exclude_id is not None:
            qs = qs.exclude(id=exclude_id)
        return not await qs.exists()

    async def names_by_ids(self, venue_ids: Iterable[int]) -> dict[int, str]:
        ids = set(venue_ids)
        if not ids:
            return {}
        rows = await Venue.filter(id__in=ids).values_list("id", "name")
        return {vid: name for vid, name in rows}

    async def list_venues(self, params: PageParams) -> Page[VenueResponse]:
        qs = Venue.all()
        total = await qs.count()
        venues = await qs.offset(params.offset).limit(params.page_size)
        return Page[VenueResponse](
            items=[VenueResponse.model_validate(v, from_attributes=True) for v in venues],
            total=total,
            page=params.page,
            page_size=params.page_size,
        )

    async def create(self, payload: VenueCreate) -> VenueResponse:
        if not await self.name_available(payload.name):
            raise ConflictError("Venue name already exists")
        try:
            inst = await Venue.create(**_venue_fields(payload))
        except IntegrityError:
            # Lost a race with a concurrent create of the same name
            raise ConflictError("Venue name already exists") from None
        logger.info("Venue created: id={} name={}", inst.id, inst.name)
        return VenueResponse.model_validate(inst, from_attributes=True)

    async def update(self, venue_id: int, payload: VenueUpdate) -> VenueResponse:
        inst = await self.find_by_id(venue_id)
        if inst is None:
            raise NotFoundError(VENUE_NOT_FOUND)
        if not await self.name_available(payload.name, exclude_id=venue_id):
            raise ConflictError("Venue name already exists")

        inst.update_from_dict(_venue_fields(payload))
        try:
            await inst.save()
        except IntegrityError:
            raise ConflictError("Venue name already exists") from None
        logger.info("Venue updated: id={}", venue_id)
        return VenueResponse.model_validate(inst, from_attributes=True)

    async def delete(self, venue_id: int) -> None:
        """Delete a venue. Refused while any active order still references it."""
        async with in_transaction():
            await self.lock(venue_id)
            if not await Venue.exists(id=venue_id):
                raise NotFoundError(VENUE_NOT_FOUND)
            if await Order.exists(venue_id=venue_id, state__in=ACTIVE_STATES):
                raise ConflictError("Venue has active orders")
            await Venue.filter(id=venue_id).delete()
        logger.info("Venue deleted: id={}", venue_id)


class OrderCRUD:
    """Order store. Returns ORM instances for single rows, pages for listings."""

    def _overlapping(
        self,
        venue_id: int,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ):
        # Half-open interval test: existing.start < end AND start < existing.end
        qs = Order.filter(
            venue_id=venue_id,
            state__in=ACTIVE_STATES,
            start_time__lt=end,
            end_time__gt=start,
        )
        if exclude_id is not None:
            qs = qs.exclude(id=exclude_id)
        return qs

    async def has_conflict(
        self,
        venue_id: int,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ) -> bool:
        """Return True if an active order overlaps [start, end)."""
        return await self._overlapping(venue_id, start, end, exclude_id).exists()

    async def find_by_venue_and_time_range(
        self, venue_id: int, start: datetime, end: datetime
    ) -> list[Order]:
        return await self._overlapping(venue_id, start, end).order_by("start_time")

    async def insert(
        self,
        user_id: UUID,
        venue_id: int,
        start_time: datetime,
        end_time: datetime,
        hours: int,
        total,
    ) -> Order:
        return await Order.create(
            user_id=user_id,
            venue_id=venue_id,
            start_time=start_time,
            end_time=end_time,
            hours=hours,
            total=total,
            state=OrderState.PENDING,
        )

    async def find_by_id(
        self,
        order_id: int,
        user_id: UUID | None = None,
        for_update: bool = False,
    ) -> Order | None:
        qs = Order.filter(id=order_id)
        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if for_update:
            qs = qs.select_for_update()
        return await qs.first()

    async def update(self, order: Order, **changes) -> Order:
        order.update_from_dict(changes)
        await order.save()
        return order

    async def update_state(
        self,
        order_id: int,
        new_state: OrderState,
        expected: Iterable[OrderState],
    ) -> bool:
        """
        Compare-and-set the state. Returns False when the order is missing
        or no longer in one of the `expected` states.
        """
        updated = await Order.filter(id=order_id, state__in=list(expected)).update(
            state=new_state, updated_at=datetime.now(timezone.utc)
        )
        return updated > 0

    async def delete(
        self, order_id: int, states: Iterable[OrderState] | None = None
    ) -> bool:
        qs = Order.filter(id=order_id)
        if states is not None:
            qs = qs.filter(state__in=list(states))
        return await qs.delete() > 0

    async def _page(self, qs, params: PageParams) -> Page[OrderResponse]:
        total = await qs.count()
        orders = await qs.order_by("-order_time", "-id").offset(params.offset).limit(
            params.page_size
        )
        return Page[OrderResponse](
            items=[OrderResponse.model_validate(o, from_attributes=True) for o in orders],
            total=total,
            page=params.page,
            page_size=params.page_size,
        )

    async def find_by_user(self, user_id: UUID, params: PageParams) -> Page[OrderResponse]:
        return await self._page(Order.filter(user_id=user_id), params)

    async def find_by_state(
        self, state: OrderState, params: PageParams
    ) -> Page[OrderResponse]:
        return await self._page(Order.filter(state=state), params)

    async def find_by_states(self, states: Iterable[OrderState]) -> list[OrderResponse]:
        orders = await Order.filter(state__in=list(states)).order_by("-order_time", "-id")
        return [OrderResponse.model_validate(o, from_attributes=True) for o in orders]


venue_crud = VenueCRUD()
order_crud = OrderCRUD()

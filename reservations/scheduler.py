"""
Booking admission control.

Decides whether a reservation (venue, start, hours) may be accepted,
keeps active orders of a venue from overlapping, and drives each order
through its moderation lifecycle:

    submit ──► PENDING ──approve──► APPROVED ──finish──► FINISHED
                  │                    │
                  └──reject──► REJECTED └──modify──► PENDING

Writers of one venue's timeline are serialized twice: by a per-venue
asyncio.Lock (one process) and by a row lock on the venue inside the
check-then-write transaction (several processes, where the database
supports SELECT ... FOR UPDATE).
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID
from zoneinfo import ZoneInfo

from loguru import logger
from tortoise.transactions import in_transaction

from reservations import settings
from reservations.crud import OrderCRUD, VenueCRUD, order_crud, venue_crud
from reservations.errors import (
    ORDER_NOT_FOUND,
    VENUE_NOT_FOUND,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from reservations.models import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    Order,
    OrderState,
    Venue,
)
from reservations.schemas import OrderResponse, OrderSlot, Page, PageParams

INVALID_DURATION = "Invalid booking duration"
PAST_START = "Cannot book time in the past"
OUTSIDE_HOURS = "Outside business hours"
SLOT_TAKEN = "Time slot already booked"
STATE_CHANGED = "Order state already changed"


def _to_utc(dt: datetime) -> datetime:
    """Ensure a datetime is UTC-aware, handling both aware and naive inputs."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_total(hours: int, price: Decimal) -> Decimal:
    return (Decimal(hours) * Decimal(price)).quantize(Decimal("0.01"))


def within_business_hours(
    venue: Venue, start: datetime, hours: int, tz: ZoneInfo
) -> bool:
    """
    True if [start, start + hours) fits in one of the venue's opening windows.

    open == close means the venue never closes; close < open means the
    window runs past midnight into the next day.
    """
    opens, closes = venue.opens_at, venue.closes_at
    if opens == closes:
        return True

    local_start = start.astimezone(tz)
    local_end = (start + timedelta(hours=hours)).astimezone(tz)

    # A window opened yesterday may still be running for overnight venues
    for day in (local_start.date() - timedelta(days=1), local_start.date()):
        window_open = datetime.combine(day, opens, tzinfo=tz)
        window_close = datetime.combine(day, closes, tzinfo=tz)
        if closes < opens:
            window_close += timedelta(days=1)
        if window_open <= local_start and local_end <= window_close:
            return True
    return False


class BookingScheduler:
    def __init__(
        self,
        orders: OrderCRUD = order_crud,
        venues: VenueCRUD = venue_crud,
        clock: Callable[[], datetime] = _utcnow,
        venue_tz: str = settings.VENUE_TIMEZONE,
    ) -> None:
        self.orders = orders
        self.venues = venues
        self.clock = clock
        self.tz = ZoneInfo(venue_tz)
        # Entries live only while some writer holds or awaits the venue's lock
        self._venue_locks: dict[int, asyncio.Lock] = {}
        self._lock_users: Counter[int] = Counter()

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------

    def _check_request(self, start_time: datetime, hours: int) -> datetime:
        if not settings.MIN_BOOKING_HOURS <= hours <= settings.MAX_BOOKING_HOURS:
            raise ValidationError(INVALID_DURATION)
        start = _to_utc(start_time)
        if start <= _to_utc(self.clock()):
            raise ValidationError(PAST_START)
        return start

    async def _resolve_venue(self, venue_name: str) -> Venue:
        venue = await self.venues.find_by_name(venue_name)
        if venue is None:
            raise NotFoundError(VENUE_NOT_FOUND)
        return venue

    def _check_hours(self, venue: Venue, start: datetime, hours: int) -> None:
        if not within_business_hours(venue, start, hours, self.tz):
            raise ValidationError(OUTSIDE_HOURS)

    async def _lock_venue(self, venue_id: int, start: datetime, hours: int) -> Venue:
        """Row-lock the venue and re-check it against the locked row."""
        venue = await self.venues.lock(venue_id)
        if venue is None:
            raise NotFoundError(VENUE_NOT_FOUND)
        self._check_hours(venue, start, hours)
        return venue

    @asynccontextmanager
    async def _serialized(self, venue_id: int):
        lock = self._venue_locks.setdefault(venue_id, asyncio.Lock())
        self._lock_users[venue_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[venue_id] -= 1
            if not self._lock_users[venue_id]:
                del self._lock_users[venue_id]
                del self._venue_locks[venue_id]

    async def _get_order(self, order_id: int, user_id: UUID | None = None) -> Order:
        order = await self.orders.find_by_id(order_id, user_id=user_id)
        if order is None:
            raise NotFoundError(ORDER_NOT_FOUND)
        return order

    @staticmethod
    def _refuse_terminal(order: Order, action: str) -> None:
        if order.state in TERMINAL_STATES:
            raise ConflictError(f"Cannot {action} {order.state.value} order")

    # -----------------------------------------------------------------------
    # Admission
    # -----------------------------------------------------------------------

    async def submit(
        self,
        venue_name: str,
        start_time: datetime,
        hours: int,
        user_id: UUID,
    ) -> OrderResponse:
        start = self._check_request(start_time, hours)
        venue = await self._resolve_venue(venue_name)
        self._check_hours(venue, start, hours)
        end = start + timedelta(hours=hours)

        async with self._serialized(venue.id):
            async with in_transaction():
                venue = await self._lock_venue(venue.id, start, hours)
                total = compute_total(hours, venue.price)
                if await self.orders.has_conflict(venue.id, start, end):
                    logger.info(
                        "Rejected booking for venue_id={} at {}: slot taken",
                        venue.id,
                        start,
                    )
                    raise ConflictError(SLOT_TAKEN)
                order = await self.orders.insert(
                    user_id=user_id,
                    venue_id=venue.id,
                    start_time=start,
                    end_time=end,
                    hours=hours,
                    total=total,
                )

        logger.info(
            "Order {} submitted: venue_id={} start={} hours={} total={}",
            order.id,
            venue.id,
            start,
            hours,
            total,
        )
        return OrderResponse.model_validate(order, from_attributes=True)

    async def modify_order(
        self,
        order_id: int,
        venue_name: str,
        start_time: datetime,
        hours: int,
        user_id: UUID | None,
    ) -> OrderResponse:
        """
        Move an order to a new venue/time/duration. The order re-enters
        moderation. `user_id=None` skips the ownership guard (admin).
        """
        order = await self._get_order(order_id, user_id)
        self._refuse_terminal(order, "modify")

        start = self._check_request(start_time, hours)
        venue = await self._resolve_venue(venue_name)
        self._check_hours(venue, start, hours)
        end = start + timedelta(hours=hours)

        async with self._serialized(venue.id):
            async with in_transaction():
                venue = await self._lock_venue(venue.id, start, hours)
                total = compute_total(hours, venue.price)
                # Re-read under lock: a moderator may have acted since the first read
                current = await self.orders.find_by_id(order_id, for_update=True)
                if current is None:
                    raise NotFoundError(ORDER_NOT_FOUND)
                self._refuse_terminal(current, "modify")

                if await self.orders.has_conflict(
                    venue.id, start, end, exclude_id=order_id
                ):
                    raise ConflictError(SLOT_TAKEN)

                previous_venue_id = current.venue_id
                current = await self.orders.update(
                    current,
                    venue_id=venue.id,
                    start_time=start,
                    end_time=end,
                    hours=hours,
                    total=total,
                    state=OrderState.PENDING,
                )

        logger.info(
            "Order {} modified: venue_id {} -> {} start={} hours={}",
            order_id,
            previous_venue_id,
            venue.id,
            start,
            hours,
        )
        return OrderResponse.model_validate(current, from_attributes=True)

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    async def _transition(
        self,
        order_id: int,
        source: OrderState,
        target: OrderState,
        user_id: UUID | None = None,
    ) -> OrderResponse:
        if user_id is not None:
            # Ownership guard; the compare-and-set below still decides the race
            await self._get_order(order_id, user_id)

        if not await self.orders.update_state(order_id, target, expected=(source,)):
            current = await self.orders.find_by_id(order_id)
            if current is None:
                raise NotFoundError(ORDER_NOT_FOUND)
            if target == OrderState.FINISHED and current.state == OrderState.PENDING:
                raise ConflictError("Order must be approved before it can be finished")
            logger.warning(
                "Order {} transition {} -> {} refused: state is {}",
                order_id,
                source,
                target,
                current.state,
            )
            raise ConflictError(STATE_CHANGED)

        logger.info("Order {} {} -> {}", order_id, source, target)
        updated = await self.orders.find_by_id(order_id)
        if updated is None:
            # Deleted right after the transition
            raise NotFoundError(ORDER_NOT_FOUND)
        return OrderResponse.model_validate(updated, from_attributes=True)

    async def confirm_order(self, order_id: int) -> OrderResponse:
        return await self._transition(order_id, OrderState.PENDING, OrderState.APPROVED)

    async def reject_order(self, order_id: int) -> OrderResponse:
        return await self._transition(order_id, OrderState.PENDING, OrderState.REJECTED)

    async def finish_order(
        self, order_id: int, user_id: UUID | None = None
    ) -> OrderResponse:
        return await self._transition(
            order_id, OrderState.APPROVED, OrderState.FINISHED, user_id=user_id
        )

    async def cancel_order(self, order_id: int, user_id: UUID | None) -> OrderResponse:
        """User-initiated cancel: removes a pending or approved order."""
        order = await self._get_order(order_id, user_id)
        self._refuse_terminal(order, "cancel")

        if not await self.orders.delete(order_id, states=ACTIVE_STATES):
            current = await self.orders.find_by_id(order_id)
            if current is None:
                raise NotFoundError(ORDER_NOT_FOUND)
            self._refuse_terminal(current, "cancel")
            raise ConflictError(STATE_CHANGED)

        logger.info("Order {} cancelled by user {}", order_id, user_id)
        return OrderResponse.model_validate(order, from_attributes=True)

    async def del_order(self, order_id: int) -> bool:
        """Remove an order regardless of state. Returns False if nothing was removed."""
        deleted = await self.orders.delete(order_id)
        if deleted:
            logger.info("Order {} deleted", order_id)
        else:
            logger.debug("Order {} delete: no such order", order_id)
        return deleted

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def find_by_id(
        self, order_id: int, user_id: UUID | None = None
    ) -> OrderResponse | None:
        order = await self.orders.find_by_id(order_id, user_id=user_id)
        if order is None:
            return None
        return OrderResponse.model_validate(order, from_attributes=True)

    async def find_user_order(
        self, user_id: UUID, params: PageParams
    ) -> Page[OrderResponse]:
        return await self.orders.find_by_user(user_id, params)

    async def find_no_audit_order(self, params: PageParams) -> Page[OrderResponse]:
        return await self.orders.find_by_state(OrderState.PENDING, params)

    async def find_audit_order(self) -> list[OrderResponse]:
        return await self.orders.find_by_states(
            (OrderState.APPROVED, OrderState.FINISHED)
        )

    async def find_date_order(
        self, venue_id: int, start: datetime, end: datetime
    ) -> list[OrderResponse]:
        orders = await self.orders.find_by_venue_and_time_range(
            venue_id, _to_utc(start), _to_utc(end)
        )
        return [OrderResponse.model_validate(o, from_attributes=True) for o in orders]

    async def find_occupied_slots(self, venue_id: int, day: date) -> list[OrderSlot]:
        """Occupied windows of a venue during one local calendar day."""
        day_start = datetime.combine(day, time.min, tzinfo=self.tz)
        orders = await self.orders.find_by_venue_and_time_range(
            venue_id, _to_utc(day_start), _to_utc(day_start + timedelta(days=1))
        )
        return [OrderSlot.model_validate(o, from_attributes=True) for o in orders]


booking_scheduler = BookingScheduler()

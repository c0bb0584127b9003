from datetime import time
from enum import StrEnum

from tortoise import fields
from tortoise.models import Model


class OrderState(StrEnum):
    PENDING = "pending"  # submitted or edited, awaiting moderation
    APPROVED = "approved"  # admin accepted, awaiting completion
    REJECTED = "rejected"  # admin refused
    FINISHED = "finished"  # service consumed


# States that hold a slot on the venue's timeline
ACTIVE_STATES = (OrderState.PENDING, OrderState.APPROVED)
# States that can no longer be modified or cancelled
TERMINAL_STATES = (OrderState.REJECTED, OrderState.FINISHED)


class Venue(Model):
    id = fields.IntField(primary_key=True)
    name = fields.CharField(max_length=100, unique=True)
    description = fields.TextField(default="")
    address = fields.CharField(max_length=255)
    picture = fields.CharField(max_length=255, null=True)  # stored path only

    price = fields.DecimalField(max_digits=8, decimal_places=2)  # per hour
    open_time = fields.CharField(max_length=5)  # "HH:MM", venue timezone
    close_time = fields.CharField(max_length=5)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:  # type: ignore
        table = "venues"
        ordering = ["id"]

    @property
    def opens_at(self) -> time:
        return time.fromisoformat(self.open_time)

    @property
    def closes_at(self) -> time:
        return time.fromisoformat(self.close_time)


class Order(Model):
    id = fields.IntField(primary_key=True)

    user_id = fields.UUIDField(db_index=True)  # the customer who booked
    venue_id = fields.IntField(db_index=True)  # loose reference, no cascade

    order_time = fields.DatetimeField(auto_now_add=True)
    start_time = fields.DatetimeField()
    end_time = fields.DatetimeField()  # derived: start_time + hours
    hours = fields.IntField()

    total = fields.DecimalField(max_digits=10, decimal_places=2)  # hours * price
    state = fields.CharEnumField(OrderState, default=OrderState.PENDING)

    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "orders"
        ordering = ["-order_time"]

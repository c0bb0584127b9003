from enum import StrEnum


class OrderScope(StrEnum):
    # Customer scopes
    READ = "orders:read"  # view own orders
    WRITE = "orders:write"  # submit / modify / finish own orders
    CANCEL = "orders:cancel"  # cancel own order

    # Admin scopes
    ADMIN = "admin:orders"
    ADMIN_READ = "admin:orders:read"
    ADMIN_WRITE = "admin:orders:write"  # approve / reject
    ADMIN_DELETE = "admin:orders:delete"


class VenueScope(StrEnum):
    READ = "venues:read"
    ADMIN_WRITE = "admin:venues:write"


ORDER_SCOPE_DESCRIPTIONS: dict[str, str] = {
    OrderScope.READ: "View your own orders.",
    OrderScope.WRITE: "Submit, modify or finish your own orders.",
    OrderScope.CANCEL: "Cancel your own pending or approved order.",
    OrderScope.ADMIN_READ: "Read any order and the moderation queues (admin).",
    OrderScope.ADMIN_WRITE: "Approve or reject pending orders (admin).",
    OrderScope.ADMIN_DELETE: "Hard-delete any order (admin).",
}

VENUE_SCOPE_DESCRIPTIONS: dict[str, str] = {
    VenueScope.READ: "Browse and search venue listings.",
    VenueScope.ADMIN_WRITE: "Create, edit or delete venues (admin).",
}

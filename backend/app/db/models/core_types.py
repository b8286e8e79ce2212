import enum

class Role(str, enum.Enum):
    retailer = "retailer"
    wholesaler = "wholesaler"
    distributor = "distributor"
    customer = "customer"

class ActorRole(str, enum.Enum):
    retailer = "retailer"
    customer = "customer"
    system = "system"

class OrderStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    preparing = "preparing"
    ready = "ready"
    completed = "completed"
    rejected = "rejected"
    cancelled = "cancelled"
    expired = "expired"

class PaymentStatus(str, enum.Enum):
    unpaid = "unpaid"
    paid = "paid"
    refunded = "refunded"

class PaymentMethod(str, enum.Enum):
    cash = "cash"
    upi = "upi"
    card = "card"
    online = "online"

class EventType(str, enum.Enum):
    placed = "placed"
    accepted = "accepted"
    rejected = "rejected"
    preparing = "preparing"
    ready = "ready"
    completed = "completed"
    cancelled = "cancelled"
    expired = "expired"


TERMINAL_STATUSES = frozenset(
    {
        OrderStatus.completed,
        OrderStatus.rejected,
        OrderStatus.cancelled,
        OrderStatus.expired,
    }
)


def enum_value(value):
    # str(Enum) donne "EventType.placed" : on veut "placed"
    return value.value if isinstance(value, enum.Enum) else value

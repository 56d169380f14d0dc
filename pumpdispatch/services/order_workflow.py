"""
Order lifecycle and pump availability rules

Pure functions over status values; persistence lives in the order and pump
services. Every status change of an order goes through ensure_transition.
"""

from enum import Enum
from typing import Optional


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    ON_WAY_TO_PHARMACY = "ON_WAY_TO_PHARMACY"
    ON_WAY_TO_CUSTOMER = "ON_WAY_TO_CUSTOMER"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PumpStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    ASSIGNED = "ASSIGNED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    IN_MAINTENANCE = "IN_MAINTENANCE"


class PumpAction(str, Enum):
    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    DELIVERED = "DELIVERED"
    RETURNED = "RETURNED"


# Forward path a delivery follows
DELIVERY_SEQUENCE = (
    OrderStatus.PENDING,
    OrderStatus.ASSIGNED,
    OrderStatus.ON_WAY_TO_PHARMACY,
    OrderStatus.ON_WAY_TO_CUSTOMER,
    OrderStatus.DELIVERED,
)

# Statuses an order can still be cancelled from; the forward edges follow DELIVERY_SEQUENCE
CANCELLABLE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.ASSIGNED,
    OrderStatus.ON_WAY_TO_PHARMACY,
)

# Pump status each order transition moves the attached pumps into.
# The driver takes custody of the pumps when accepting the order.
PUMP_STATUS_ON_TRANSITION = {
    OrderStatus.PENDING: PumpStatus.ASSIGNED,
    OrderStatus.ASSIGNED: PumpStatus.IN_TRANSIT,
    OrderStatus.DELIVERED: PumpStatus.DELIVERED,
    OrderStatus.CANCELLED: PumpStatus.AVAILABLE,
}

# Movement written to the audit log for each pump on that transition
PUMP_ACTION_ON_TRANSITION = {
    OrderStatus.PENDING: PumpAction.ASSIGNED,
    OrderStatus.ASSIGNED: PumpAction.PICKED_UP,
    OrderStatus.DELIVERED: PumpAction.DELIVERED,
}

DRIVER_ACTIVE_STATUSES = (
    OrderStatus.ASSIGNED,
    OrderStatus.ON_WAY_TO_PHARMACY,
    OrderStatus.ON_WAY_TO_CUSTOMER,
)

TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

LEGACY_STATUS_ALIASES = {
    "CREATED": OrderStatus.PENDING,
    "IN_PROGRESS": OrderStatus.ON_WAY_TO_PHARMACY,
}


class InvalidTransitionError(ValueError):
    """Raised when an order is asked to move along an edge the lifecycle does not allow"""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order from {current} to {target}")


class PumpUnavailableError(Exception):
    """Raised when selected pumps cannot be attached to a new order"""

    def __init__(self, pump_numbers: list, message: Optional[str] = None):
        self.pump_numbers = list(pump_numbers)
        self.message = message or (
            f"These pumps are no longer available: {', '.join(self.pump_numbers)}"
        )
        super().__init__(self.message)


def normalize_status(status) -> OrderStatus:
    """Map a stored status string (including legacy values) to an OrderStatus"""
    raw = str(status.value if isinstance(status, Enum) else (status or "")).strip().upper()
    if not raw:
        return OrderStatus.PENDING
    if raw in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[raw]
    try:
        return OrderStatus(raw)
    except ValueError:
        raise InvalidTransitionError(raw, "a known status")


def effective_status(status, delivered_at=None, delivered_at_iso: Optional[str] = None) -> OrderStatus:
    """Status used for availability decisions; a delivery timestamp always wins"""
    if delivered_at or delivered_at_iso:
        return OrderStatus.DELIVERED
    return normalize_status(status)


def is_active(status, delivered_at=None, delivered_at_iso: Optional[str] = None) -> bool:
    """Whether an order still holds its pumps"""
    return effective_status(status, delivered_at, delivered_at_iso) not in TERMINAL_STATUSES


def can_transition(current, target) -> bool:
    current_status = normalize_status(current)
    target_status = normalize_status(target)
    if target_status == OrderStatus.CANCELLED:
        return current_status in CANCELLABLE_STATUSES
    return target_status == next_status(current_status)


def ensure_transition(current, target) -> OrderStatus:
    if not can_transition(current, target):
        raise InvalidTransitionError(normalize_status(current).value, normalize_status(target).value)
    return normalize_status(target)


def next_status(current) -> Optional[OrderStatus]:
    """Successor on the delivery path, None once delivered or cancelled"""
    current_status = normalize_status(current)
    if current_status not in DELIVERY_SEQUENCE:
        return None
    index = DELIVERY_SEQUENCE.index(current_status)
    if index + 1 >= len(DELIVERY_SEQUENCE):
        return None
    return DELIVERY_SEQUENCE[index + 1]


def is_pump_selectable(status, maintenance_due: bool = False, active: bool = True) -> bool:
    """A pump can go on a new order only when active, AVAILABLE and not due for maintenance"""
    if not active or maintenance_due:
        return False
    raw = str(status.value if isinstance(status, Enum) else (status or "")).strip().upper()
    return raw in ("", PumpStatus.AVAILABLE.value)


def is_fully_maintained(cleaned: bool, calibrated: bool, inspected: bool) -> bool:
    return cleaned is True and calibrated is True and inspected is True

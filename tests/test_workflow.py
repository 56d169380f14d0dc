"""
Unit tests for the order lifecycle rules
"""

import pytest
from datetime import datetime

from pumpdispatch.services.order_workflow import (
    OrderStatus, PumpStatus, InvalidTransitionError,
    can_transition, ensure_transition, next_status, effective_status,
    is_active, is_pump_selectable, is_fully_maintained, normalize_status,
)

class TestTransitions:
    """Test cases for the transition table"""

    def test_happy_path_follows_delivery_sequence(self):
        """Each status advances to the next one until DELIVERED"""
        status = OrderStatus.PENDING
        visited = [status]
        while next_status(status) is not None:
            status = ensure_transition(status, next_status(status))
            visited.append(status)

        assert visited == [
            OrderStatus.PENDING,
            OrderStatus.ASSIGNED,
            OrderStatus.ON_WAY_TO_PHARMACY,
            OrderStatus.ON_WAY_TO_CUSTOMER,
            OrderStatus.DELIVERED,
        ]

    def test_skipping_a_step_is_rejected(self):
        assert not can_transition("PENDING", "ON_WAY_TO_CUSTOMER")
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_transition("ASSIGNED", "DELIVERED")
        assert exc_info.value.current == "ASSIGNED"
        assert exc_info.value.target == "DELIVERED"

    def test_status_never_moves_backwards(self):
        assert not can_transition("ON_WAY_TO_CUSTOMER", "ASSIGNED")
        assert not can_transition("ASSIGNED", "PENDING")

    @pytest.mark.parametrize("status", ["PENDING", "ASSIGNED", "ON_WAY_TO_PHARMACY"])
    def test_cancel_allowed_before_pickup(self, status):
        assert can_transition(status, OrderStatus.CANCELLED)

    def test_cancel_rejected_after_pickup(self):
        assert not can_transition("ON_WAY_TO_CUSTOMER", "CANCELLED")

    @pytest.mark.parametrize("terminal", ["DELIVERED", "CANCELLED"])
    def test_terminal_statuses_have_no_exits(self, terminal):
        for target in OrderStatus:
            assert not can_transition(terminal, target)
        assert next_status(terminal) is None

    def test_unknown_status_raises(self):
        with pytest.raises(InvalidTransitionError):
            normalize_status("SHIPPED")

class TestEffectiveStatus:
    """Test cases for legacy values and delivery timestamps"""

    def test_legacy_values_are_mapped(self):
        assert effective_status("CREATED") == OrderStatus.PENDING
        assert effective_status("IN_PROGRESS") == OrderStatus.ON_WAY_TO_PHARMACY

    def test_blank_status_is_pending(self):
        assert effective_status("") == OrderStatus.PENDING
        assert effective_status(None) == OrderStatus.PENDING

    def test_delivery_timestamp_wins(self):
        """An order with a delivery time is delivered whatever its status says"""
        assert effective_status("ON_WAY_TO_CUSTOMER", delivered_at=datetime.utcnow()) == OrderStatus.DELIVERED
        assert effective_status("ASSIGNED", delivered_at_iso="2024-05-01T10:00:00.000Z") == OrderStatus.DELIVERED
        assert not is_active("ASSIGNED", delivered_at_iso="2024-05-01T10:00:00.000Z")

    def test_active_statuses_hold_pumps(self):
        for status in ("PENDING", "ASSIGNED", "ON_WAY_TO_PHARMACY", "ON_WAY_TO_CUSTOMER", "CREATED"):
            assert is_active(status)
        assert not is_active("DELIVERED")
        assert not is_active("CANCELLED")

class TestPumpRules:
    """Test cases for pump selection and maintenance rules"""

    def test_available_pump_is_selectable(self):
        assert is_pump_selectable(PumpStatus.AVAILABLE)
        assert is_pump_selectable("available")
        assert is_pump_selectable(None)

    @pytest.mark.parametrize("status", ["ASSIGNED", "IN_TRANSIT", "DELIVERED", "IN_MAINTENANCE"])
    def test_busy_pump_is_not_selectable(self, status):
        assert not is_pump_selectable(status)

    def test_due_or_inactive_pump_is_not_selectable(self):
        assert not is_pump_selectable("AVAILABLE", maintenance_due=True)
        assert not is_pump_selectable("AVAILABLE", active=False)

    def test_all_three_checks_required(self):
        assert is_fully_maintained(True, True, True)
        assert not is_fully_maintained(True, True, False)
        assert not is_fully_maintained(True, None, True)

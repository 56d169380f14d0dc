"""
Returns service: pumps collected from customers and their arrival back at the pharmacy
"""

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from fastapi import HTTPException, status
from datetime import datetime
from typing import Optional
import logging

from pumpdispatch.models.order import Order, OrderPreviousPump
from pumpdispatch.models.pump import Pump
from pumpdispatch.services.order_service import MOVEMENT_ROLE_EMPLOYEE
from pumpdispatch.services.order_workflow import PumpStatus, PumpAction
from pumpdispatch.services.pump_service import log_pump_movement
from pumpdispatch.utils.error_handler import DatabaseError
from pumpdispatch.utils.pump_scanner import normalize_pump_scanner_input

logger = logging.getLogger(__name__)

RETURN_FILTERS = ("all", "pending", "returned")

def _reported(order: Order) -> list[OrderPreviousPump]:
    """Previous pumps the driver reported on at delivery, collected or left behind"""
    return [entry for entry in order.previous_pumps if entry.returned is not None]

def is_return_pending(order: Order) -> bool:
    """A reported pump has not been confirmed back at the pharmacy"""
    return any(not entry.returned_to_pharmacy for entry in _reported(order))

def is_return_complete(order: Order) -> bool:
    reported = _reported(order)
    return bool(reported) and all(entry.returned_to_pharmacy for entry in reported)

class ReturnsService:
    """Service for the pump returns screen"""

    def __init__(self, db: Session):
        self.db = db

    async def list_returns(self, pharmacy_id: int, filter_by: str = "all", search: Optional[str] = None) -> dict:
        """
        Orders with previous pumps, newest update first, plus counts per filter.

        The search is normalised like scanner input and matched as a substring
        of the previous pump numbers. Counts ignore the search.
        """
        if filter_by not in RETURN_FILTERS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Filter must be one of: {', '.join(RETURN_FILTERS)}"
            )

        orders = (
            self.db.query(Order)
            .filter(Order.pharmacy_id == pharmacy_id)
            .order_by(Order.status_updated_at.desc(), Order.id.desc())
            .all()
        )
        orders = [o for o in orders if o.previous_pumps]

        counts = {
            "all": len(orders),
            "pending": sum(1 for o in orders if is_return_pending(o)),
            "returned": sum(1 for o in orders if is_return_complete(o)),
        }

        needle = normalize_pump_scanner_input(search or "")
        if needle:
            orders = [
                o for o in orders
                if any(needle in entry.pump_number.upper() for entry in o.previous_pumps)
            ]

        if filter_by == "pending":
            orders = [o for o in orders if is_return_pending(o)]
        elif filter_by == "returned":
            orders = [o for o in orders if is_return_complete(o)]

        return {"orders": orders, "counts": counts}

    async def confirm_return(self, actor: dict, order_id: int, pump_number: str) -> Order:
        """Record a pump as back at the pharmacy and send it to maintenance"""
        pharmacy_id = actor["pharmacy_id"]
        number = (pump_number or "").strip().upper()
        try:
            order = self.db.query(Order).filter(Order.id == order_id, Order.pharmacy_id == pharmacy_id).first()
            if not order:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

            entry = next((e for e in order.previous_pumps if e.pump_number.upper() == number), None)
            if entry is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Pump '{number}' is not a previous pump of this order"
                )
            if entry.returned_to_pharmacy:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Return of pump '{number}' was already confirmed"
                )
            if entry.returned is not True:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Pump '{number}' was not collected from the customer"
                )

            now = datetime.utcnow()
            entry.returned_to_pharmacy = True
            entry.returned_to_pharmacy_at = now
            order.status_updated_at = now

            pump = self.db.query(Pump).filter(
                Pump.pharmacy_id == pharmacy_id,
                Pump.pump_number == entry.pump_number
            ).first()
            if pump is not None:
                pump.status = PumpStatus.IN_MAINTENANCE.value
                pump.maintenance_due = True
                pump.maintenance_due_at = now
                pump.cleaned = False
                pump.calibrated = False
                pump.inspected = False
                pump.maintenance_completed_at = None
                log_pump_movement(
                    self.db, pump, PumpAction.RETURNED, actor["id"], actor.get("name") or "",
                    MOVEMENT_ROLE_EMPLOYEE, order_id=order.id
                )
            else:
                logger.warning(f"Returned pump {entry.pump_number} is not registered at pharmacy {pharmacy_id}")

            self.db.commit()
            self.db.refresh(order)

            logger.info(f"Return of pump {entry.pump_number} confirmed on order {order_id}")
            return order

        except (HTTPException, StaleDataError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to confirm return on order {order_id}: {e}")
            raise DatabaseError(f"Failed to confirm return: {str(e)}", e)

"""
Order service: creation with pump reservation, listing, cancellation and delivery records
"""

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from fastapi import HTTPException, status
from datetime import datetime
from typing import Optional
import logging
import math

from pumpdispatch.models.order import Order, OrderPump, OrderPreviousPump
from pumpdispatch.models.customer import Customer
from pumpdispatch.models.pump import Pump
from pumpdispatch.schemas.order import OrderCreate
from pumpdispatch.services.email_service import EmailService
from pumpdispatch.services.order_workflow import (
    OrderStatus, PumpUnavailableError, InvalidTransitionError,
    PUMP_STATUS_ON_TRANSITION, PUMP_ACTION_ON_TRANSITION,
    ensure_transition, effective_status, normalize_status, is_pump_selectable,
)
from pumpdispatch.services.pump_service import log_pump_movement, active_orders_holding
from pumpdispatch.utils.error_handler import DatabaseError

logger = logging.getLogger(__name__)

MOVEMENT_ROLE_EMPLOYEE = "EMPLOYEE"
MOVEMENT_ROLE_DRIVER = "DRIVER"

def pumps_for_order(db: Session, order: Order, lock: bool = False) -> list[Pump]:
    """Pump rows attached to an order, in selection order; deleted pumps are skipped"""
    query = db.query(Pump).filter(Pump.pharmacy_id == order.pharmacy_id)
    ids = [item.pump_id for item in order.pumps if item.pump_id is not None]
    if ids:
        query = query.filter(Pump.id.in_(ids))
    else:
        query = query.filter(Pump.pump_number.in_(order.pump_numbers))
    if lock:
        query = query.with_for_update()

    found = {p.id: p for p in query.all()}
    by_number = {p.pump_number: p for p in found.values()}
    ordered = []
    for item in order.pumps:
        pump = found.get(item.pump_id) if item.pump_id is not None else by_number.get(item.pump_number)
        if pump is not None:
            ordered.append(pump)
    return ordered

def apply_transition(
    db: Session,
    order: Order,
    target: OrderStatus,
    actor_id: int,
    actor_name: str,
    movement_role: str
) -> Order:
    """
    Move an order to the target status together with its pumps.

    Nothing is committed here; the caller commits the order and pump rows in
    one transaction.
    """
    current = effective_status(order.status, order.delivered_at, order.delivered_at_iso)
    new_status = ensure_transition(current, target)
    now = datetime.utcnow()

    order.status = new_status.value
    order.status_updated_at = now

    pump_status = PUMP_STATUS_ON_TRANSITION.get(new_status)
    action = PUMP_ACTION_ON_TRANSITION.get(new_status)
    if pump_status is not None:
        for pump in pumps_for_order(db, order, lock=True):
            pump.status = pump_status.value
            if action is not None:
                log_pump_movement(db, pump, action, actor_id, actor_name, movement_role, order_id=order.id)

    return order

class OrderService:
    """Service for employee-side order operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_order(self, pharmacy_id: int, order_id: int) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id, Order.pharmacy_id == pharmacy_id).first()
        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
        return order

    def customer_previous_pumps(self, pharmacy_id: int, customer_id: int) -> list[str]:
        """Distinct pump numbers from the customer's orders, in the order first seen"""
        orders = (
            self.db.query(Order)
            .filter(Order.pharmacy_id == pharmacy_id, Order.customer_id == customer_id)
            .order_by(Order.created_at, Order.id)
            .all()
        )
        seen = []
        for order in orders:
            for number in order.pump_numbers:
                if number and number not in seen:
                    seen.append(number)
        return seen

    async def create_order(self, actor: dict, data: OrderCreate) -> Order:
        """
        Create a PENDING order and reserve its pumps.

        Availability is checked and the pumps are moved to ASSIGNED inside one
        transaction. Rows are locked where the database supports it and the
        version counter on each pump makes a concurrent writer fail instead of
        double-booking.

        Raises:
            HTTPException: 404 for an unknown customer or pump
            PumpUnavailableError: when any selected pump is taken, due or inactive
        """
        pharmacy_id = actor["pharmacy_id"]
        try:
            customer = self.db.query(Customer).filter(
                Customer.id == data.customer_id,
                Customer.pharmacy_id == pharmacy_id
            ).first()
            if not customer:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")

            pumps = (
                self.db.query(Pump)
                .filter(Pump.id.in_(data.pump_ids), Pump.pharmacy_id == pharmacy_id)
                .with_for_update()
                .all()
            )
            by_id = {p.id: p for p in pumps}
            missing = [str(pid) for pid in data.pump_ids if pid not in by_id]
            if missing:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Pumps not found: {', '.join(missing)}"
                )
            selected = [by_id[pid] for pid in data.pump_ids]

            blocked = [p.pump_number for p in selected if not is_pump_selectable(p.status, p.maintenance_due, p.active)]
            numbers = [p.pump_number for p in selected]
            for held in active_orders_holding(self.db, pharmacy_id, list(data.pump_ids), numbers):
                for number in held.pump_numbers:
                    if number in numbers and number not in blocked:
                        blocked.append(number)
            if blocked:
                raise PumpUnavailableError(sorted(blocked, key=numbers.index))

            previous = self.customer_previous_pumps(pharmacy_id, customer.id)
            now = datetime.utcnow()

            order = Order(
                pharmacy_id=pharmacy_id,
                pharmacy_name=actor.get("pharmacy_name"),
                customer_id=customer.id,
                customer_name=customer.customer_name,
                customer_city=customer.city,
                customer_address=customer.address,
                customer_state=customer.state,
                customer_country=customer.country,
                return_reminder_note=customer.return_reminder_note,
                created_by_employee_id=actor["id"],
                created_by_employee_name=actor.get("name") or "",
                status=OrderStatus.PENDING.value,
                created_at=now,
                status_updated_at=now,
            )
            order.pumps = [
                OrderPump(pump_id=p.id, pump_number=p.pump_number, position=i)
                for i, p in enumerate(selected)
            ]
            order.previous_pumps = [
                OrderPreviousPump(pump_number=number, position=i)
                for i, number in enumerate(previous)
            ]
            self.db.add(order)
            self.db.flush()

            pump_status = PUMP_STATUS_ON_TRANSITION[OrderStatus.PENDING]
            action = PUMP_ACTION_ON_TRANSITION[OrderStatus.PENDING]
            for pump in selected:
                pump.status = pump_status.value
                log_pump_movement(
                    self.db, pump, action, actor["id"], actor.get("name") or "",
                    MOVEMENT_ROLE_EMPLOYEE, order_id=order.id
                )

            self.db.commit()
            self.db.refresh(order)

            logger.info(f"Created order {order.id} for customer {customer.id} with pumps {numbers}")
            return order

        except (HTTPException, PumpUnavailableError):
            self.db.rollback()
            raise
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Pump reservation lost to a concurrent order: {data.pump_ids}")
            raise PumpUnavailableError(
                [],
                "One or more selected pumps were just taken by another order. Reload and try again."
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create order: {e}")
            raise DatabaseError(f"Failed to create order: {str(e)}", e)

    async def list_orders(
        self,
        pharmacy_id: int,
        page: int = 1,
        page_size: int = 10,
        status_filter: Optional[str] = None
    ) -> dict:
        """Paginated orders of a pharmacy, newest first"""
        query = self.db.query(Order).filter(Order.pharmacy_id == pharmacy_id)
        if status_filter:
            try:
                wanted = normalize_status(status_filter)
            except InvalidTransitionError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Unknown order status '{status_filter}'"
                )
            query = query.filter(Order.status == wanted.value)

        total = query.count()
        offset = (page - 1) * page_size
        orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(page_size).all()

        return {
            "orders": orders,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size),
        }

    async def cancel_order(self, actor: dict, order_id: int) -> Order:
        """Cancel an order before pickup and release its pumps"""
        try:
            order = self.get_order(actor["pharmacy_id"], order_id)
            apply_transition(
                self.db, order, OrderStatus.CANCELLED,
                actor["id"], actor.get("name") or "", MOVEMENT_ROLE_EMPLOYEE
            )
            order.cancelled_at = order.status_updated_at
            order.cancelled_by = actor.get("name")

            self.db.commit()
            self.db.refresh(order)

            logger.info(f"Order {order_id} cancelled by {actor.get('name')}")
            return order

        except (HTTPException, InvalidTransitionError, StaleDataError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to cancel order {order_id}: {e}")
            raise DatabaseError(f"Failed to cancel order: {str(e)}", e)

    async def delivery_backups(self, pharmacy_id: int, limit: int = 10) -> list[Order]:
        """Delivered orders that carry a legal PDF, newest delivery first"""
        return (
            self.db.query(Order)
            .filter(
                Order.pharmacy_id == pharmacy_id,
                Order.status == OrderStatus.DELIVERED.value,
                Order.legal_pdf_url.isnot(None),
                Order.legal_pdf_url != "",
            )
            .order_by(Order.delivered_at.desc(), Order.id.desc())
            .limit(limit)
            .all()
        )

    async def share_delivery_pdf(self, pharmacy_id: int, order_id: int, to: str, email_service: EmailService) -> None:
        """Email the delivery PDF link of an order"""
        order = self.get_order(pharmacy_id, order_id)
        if not order.legal_pdf_url:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This order has no delivery PDF"
            )

        delivered = order.delivered_at_iso or (order.delivered_at.isoformat() if order.delivered_at else "")
        subject = f"Delivery record for order {order.id}"
        html = (
            f"<p>Delivery record for <strong>{order.customer_name}</strong>.</p>"
            f"<p>Delivered: {delivered}<br/>Driver: {order.driver_name or ''}</p>"
            f"<p><a href=\"{order.legal_pdf_url}\">Download the signed delivery PDF</a></p>"
        )
        text = (
            f"Delivery record for {order.customer_name}\n"
            f"Delivered: {delivered}\nDriver: {order.driver_name or ''}\n"
            f"PDF: {order.legal_pdf_url}"
        )

        if not email_service.send(to, subject, html, text):
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to send email"
            )
        logger.info(f"Shared delivery PDF of order {order.id} with {to}")

"""
Customer service
"""

from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import datetime
import logging

from pumpdispatch.models.customer import Customer
from pumpdispatch.models.order import Order
from pumpdispatch.schemas.customer import CustomerCreate
from pumpdispatch.utils.error_handler import DatabaseError

logger = logging.getLogger(__name__)

class CustomerService:
    """Service for customer registration, pump history and return reminders"""

    def __init__(self, db: Session):
        self.db = db

    def get_customer(self, pharmacy_id: int, customer_id: int) -> Customer:
        customer = self.db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.pharmacy_id == pharmacy_id
        ).first()
        if not customer:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
        return customer

    async def register_customer(self, actor: dict, data: CustomerCreate) -> Customer:
        try:
            customer = Customer(
                pharmacy_id=actor["pharmacy_id"],
                customer_name=data.customer_name,
                representative=data.representative,
                email=data.email,
                country=data.country,
                state=data.state,
                city=data.city,
                address=data.address,
                created_by=actor.get("name"),
            )
            self.db.add(customer)
            self.db.commit()
            self.db.refresh(customer)

            logger.info(f"Registered customer {customer.id} for pharmacy {customer.pharmacy_id}")
            return customer

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to register customer: {e}")
            raise DatabaseError(f"Failed to register customer: {str(e)}", e)

    async def list_customers(self, pharmacy_id: int) -> list[Customer]:
        return (
            self.db.query(Customer)
            .filter(Customer.pharmacy_id == pharmacy_id)
            .order_by(Customer.customer_name)
            .all()
        )

    async def customer_pump_overview(self, pharmacy_id: int) -> list[dict]:
        """Per customer, the distinct pump numbers found in its order history"""
        customers = await self.list_customers(pharmacy_id)
        orders = (
            self.db.query(Order)
            .filter(Order.pharmacy_id == pharmacy_id)
            .order_by(Order.created_at, Order.id)
            .all()
        )

        pumps_by_customer = {}
        for order in orders:
            numbers = pumps_by_customer.setdefault(order.customer_id, [])
            for number in order.pump_numbers:
                if number and number not in numbers:
                    numbers.append(number)

        return [
            {
                "customer_id": c.id,
                "customer_name": c.customer_name,
                "city": c.city,
                "return_reminder_note": c.return_reminder_note,
                "pumps": pumps_by_customer.get(c.id, []),
            }
            for c in customers
        ]

    async def save_return_reminder(self, actor: dict, customer_id: int, note: str) -> Customer:
        """Save the reminder note; a blank note clears it"""
        try:
            customer = self.get_customer(actor["pharmacy_id"], customer_id)
            note = (note or "").strip()
            if note:
                customer.return_reminder_note = note
                customer.return_reminder_at = datetime.utcnow()
                customer.return_reminder_by = actor.get("name")
            else:
                customer.return_reminder_note = None
                customer.return_reminder_at = None
                customer.return_reminder_by = None

            self.db.commit()
            self.db.refresh(customer)

            logger.info(f"Return reminder {'saved' if note else 'cleared'} for customer {customer_id}")
            return customer

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save return reminder for customer {customer_id}: {e}")
            raise DatabaseError(f"Failed to save return reminder: {str(e)}", e)

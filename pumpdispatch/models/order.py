"""
Order models for delivery tasks and their pump bookkeeping
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pumpdispatch.database import Base
from pumpdispatch.services.order_workflow import OrderStatus

class Order(Base):
    """Delivery task linking one or more pumps to a customer"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), index=True, nullable=False)
    pharmacy_name = Column(String(150), nullable=True)

    # Customer snapshot taken when the order is created
    customer_id = Column(Integer, ForeignKey("customers.id"), index=True, nullable=False)
    customer_name = Column(String(150), nullable=False)
    customer_city = Column(String(100), nullable=True)
    customer_address = Column(Text, nullable=True)
    customer_state = Column(String(60), nullable=True)
    customer_country = Column(String(60), nullable=True)
    return_reminder_note = Column(Text, nullable=True)

    created_by_employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    created_by_employee_name = Column(String(150), nullable=False)

    status = Column(String(30), default=OrderStatus.PENDING.value, index=True, nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), index=True, nullable=True)
    driver_name = Column(String(150), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    status_updated_at = Column(DateTime(timezone=True), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(150), nullable=True)

    # Delivery proof
    signature_url = Column(String(500), nullable=True)
    signature_hash = Column(String(64), nullable=True)
    driver_signature_url = Column(String(500), nullable=True)
    driver_signature_hash = Column(String(64), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at_iso = Column(String(40), nullable=True)
    delivered_from_ip = Column(String(45), nullable=True)
    delivered_latitude = Column(Float, nullable=True)
    delivered_longitude = Column(Float, nullable=True)
    legal_pdf_url = Column(String(500), nullable=True)

    version = Column(Integer, nullable=False)

    pumps = relationship(
        "OrderPump",
        order_by="OrderPump.position",
        cascade="all, delete-orphan",
        back_populates="order",
    )
    previous_pumps = relationship(
        "OrderPreviousPump",
        order_by="OrderPreviousPump.position",
        cascade="all, delete-orphan",
        back_populates="order",
    )

    # Two drivers accepting the same order cannot both win
    __mapper_args__ = {"version_id_col": version}

    @property
    def pump_ids(self) -> list:
        return [item.pump_id for item in self.pumps]

    @property
    def pump_numbers(self) -> list:
        return [item.pump_number for item in self.pumps]

    @property
    def customer_previous_pumps(self) -> list:
        return [item.pump_number for item in self.previous_pumps]

    def __repr__(self):
        return f"<Order(id={self.id}, customer='{self.customer_name}', status='{self.status}')>"

class OrderPump(Base):
    """Pump attached to an order, in the order it was selected"""
    __tablename__ = "order_pumps"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    pump_id = Column(Integer, ForeignKey("pumps.id", ondelete="SET NULL"), index=True, nullable=True)
    pump_number = Column(String(60), index=True, nullable=False)
    position = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="pumps")

class OrderPreviousPump(Base):
    """Pump the customer already had when the order was created, and whether it came back"""
    __tablename__ = "order_previous_pumps"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    pump_number = Column(String(60), nullable=False)
    position = Column(Integer, nullable=False)
    returned = Column(Boolean, nullable=True)  # reported by the driver at delivery
    reason = Column(Text, nullable=True)
    returned_to_pharmacy = Column(Boolean, default=False, nullable=False)
    returned_to_pharmacy_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="previous_pumps")

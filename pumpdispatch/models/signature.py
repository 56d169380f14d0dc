"""
Signature records for employees, pickups and deliveries
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, ForeignKey
from sqlalchemy.sql import func
from pumpdispatch.database import Base

class EmployeeSignature(Base):
    """Signature an employee keeps on file"""
    __tablename__ = "employee_signatures"
    
    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), index=True, nullable=False)
    employee_name = Column(String(150), nullable=False)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), nullable=False)
    signature_url = Column(String(500), nullable=False)
    signature_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class PickupSignature(Base):
    """Pharmacy staff and driver signatures taken when the pumps leave the pharmacy"""
    __tablename__ = "pickup_signatures"
    
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), nullable=False)
    employee_signature_url = Column(String(500), nullable=False)
    employee_signature_hash = Column(String(64), nullable=False)
    driver_signature_url = Column(String(500), nullable=False)
    driver_signature_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class DeliverySignature(Base):
    """Legal delivery record: signature URLs, hashes and provenance"""
    __tablename__ = "delivery_signatures"
    
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), nullable=False)
    pharmacy_name = Column(String(150), nullable=True)
    pump_numbers = Column(Text, nullable=False)  # comma separated, in order
    customer_name = Column(String(150), nullable=False)
    customer_address = Column(Text, nullable=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False)
    driver_name = Column(String(150), nullable=False)
    signature_url = Column(String(500), nullable=False)
    signature_hash = Column(String(64), nullable=False)
    driver_signature_url = Column(String(500), nullable=False)
    driver_signature_hash = Column(String(64), nullable=False)
    delivered_at_iso = Column(String(40), nullable=False)
    delivered_from_ip = Column(String(45), nullable=True)
    delivered_latitude = Column(Float, nullable=False)
    delivered_longitude = Column(Float, nullable=False)
    legal_pdf_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

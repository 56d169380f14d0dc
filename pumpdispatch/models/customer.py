"""
Customer (patient) model
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from pumpdispatch.database import Base

class Customer(Base):
    """Patient or facility receiving pumps from a pharmacy"""
    __tablename__ = "customers"
    
    id = Column(Integer, primary_key=True, index=True)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), index=True, nullable=False)
    customer_name = Column(String(150), nullable=False)
    representative = Column(String(150), nullable=True)
    email = Column(String(100), nullable=True)
    country = Column(String(60), nullable=False)
    state = Column(String(60), nullable=False)
    city = Column(String(100), nullable=False)
    address = Column(Text, nullable=True)
    return_reminder_note = Column(Text, nullable=True)
    return_reminder_at = Column(DateTime(timezone=True), nullable=True)
    return_reminder_by = Column(String(150), nullable=True)
    created_by = Column(String(150), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.customer_name}', pharmacy_id={self.pharmacy_id})>"

"""
Pharmacy model
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.sql import func
from pumpdispatch.database import Base

class Pharmacy(Base):
    """A licensed pharmacy that owns pumps, customers and employees"""
    __tablename__ = "pharmacies"
    
    id = Column(Integer, primary_key=True, index=True)
    pharmacy_name = Column(String(150), nullable=False)
    license_code = Column(String(50), nullable=False)
    email = Column(String(100), nullable=True)
    country = Column(String(60), nullable=False)
    state = Column(String(60), nullable=False)
    city = Column(String(100), nullable=False)
    address = Column(Text, nullable=False)
    pin = Column(String(4), index=True, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<Pharmacy(id={self.id}, name='{self.pharmacy_name}', active={self.active})>"

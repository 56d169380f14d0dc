"""
Driver models
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from pumpdispatch.database import Base

class Driver(Base):
    """Delivery driver; works for any pharmacy it has connected to"""
    __tablename__ = "drivers"
    
    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(150), nullable=False)
    email = Column(String(100), nullable=False)
    country = Column(String(60), nullable=False)
    state = Column(String(60), nullable=False)
    city = Column(String(100), nullable=False)
    pin = Column(String(4), index=True, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    last_latitude = Column(Float, nullable=True)
    last_longitude = Column(Float, nullable=True)
    last_location_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<Driver(id={self.id}, name='{self.full_name}', active={self.active})>"

class DriverPharmacy(Base):
    """Connection between a driver and a pharmacy, made with the pharmacy PIN"""
    __tablename__ = "driver_pharmacies"
    __table_args__ = (UniqueConstraint("driver_id", "pharmacy_id", name="uq_driver_pharmacy"),)
    
    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), index=True, nullable=False)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), index=True, nullable=False)
    connected_at = Column(DateTime(timezone=True), server_default=func.now())

"""
Employee model
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from pumpdispatch.database import Base

class Employee(Base):
    """Pharmacy staff member who registers pumps and customers and creates orders"""
    __tablename__ = "employees"
    
    id = Column(Integer, primary_key=True, index=True)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), index=True, nullable=False)
    pharmacy_name = Column(String(150), nullable=False)
    full_name = Column(String(150), nullable=False)
    email = Column(String(100), nullable=False)
    job_title = Column(String(100), nullable=False)
    role = Column(String(20), default="EMPLOYEE", nullable=False)
    pin = Column(String(4), index=True, nullable=False)
    country = Column(String(60), nullable=True)
    state = Column(String(60), nullable=True)
    city = Column(String(100), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<Employee(id={self.id}, name='{self.full_name}', pharmacy_id={self.pharmacy_id})>"

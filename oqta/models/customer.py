import uuid

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from oqta.core.database import Base, utcnow


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(64), nullable=True, index=True)
    company = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    sessions = relationship(
        "CustomerSession",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="CustomerSession.linked_at.desc()",
    )
    invoices = relationship("Invoice", back_populates="customer", order_by="Invoice.created_at.desc()")

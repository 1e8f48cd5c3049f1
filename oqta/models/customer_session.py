import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from oqta.core.database import Base, utcnow


class CustomerSession(Base):
    __tablename__ = "customer_sessions"
    __table_args__ = (UniqueConstraint("customer_id", "session_id", name="uq_customer_sessions_customer_session"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(255), nullable=False, index=True)
    linked_by = Column(String(36), nullable=True)
    notes = Column(Text, nullable=True)
    linked_at = Column(DateTime, default=utcnow, nullable=False)

    customer = relationship("Customer", back_populates="sessions")

import uuid

from sqlalchemy import Column, DateTime, String, Text

from oqta.core.database import Base, utcnow


class ConversationSummary(Base):
    __tablename__ = "conversation_summaries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(255), nullable=False, unique=True, index=True)
    customer_name = Column(String(255), nullable=False, default="Unknown")
    phone_number = Column(String(64), nullable=True)
    summary = Column(Text, nullable=False)
    next_action = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

from sqlalchemy import Column, DateTime, String

from oqta.core.database import Base, utcnow


class ChatSession(Base):
    """Registry row for a visitor conversation; display metadata only."""

    __tablename__ = "sessions"

    # id comes from the chat widget / external workflow
    id = Column(String(255), primary_key=True)
    user_id = Column(String(255), nullable=True)
    user_email = Column(String(255), nullable=True)
    user_name = Column(String(255), nullable=True)
    started_at = Column(DateTime, default=utcnow, nullable=False)
    last_message_at = Column(DateTime, default=utcnow, nullable=False)

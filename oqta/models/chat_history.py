from sqlalchemy import JSON, Column, DateTime, Integer, String

from oqta.core.database import Base, utcnow


class ChatHistory(Base):
    # Written by the external workflow engine; read-only for this service.
    __tablename__ = "n8n_chat_histories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(255), nullable=False, index=True)
    message = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

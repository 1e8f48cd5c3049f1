import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, String

from oqta.core.database import Base, utcnow


class FreeZoneIntegration(Base):
    __tablename__ = "free_zone_integrations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    code = Column(String(64), nullable=False, unique=True)
    api_endpoint = Column(String(1024), nullable=True)
    api_key = Column(String(1024), nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

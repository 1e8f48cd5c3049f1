from sqlalchemy import Column, DateTime, String, Text

from oqta.core.database import Base, utcnow


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

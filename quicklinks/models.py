from sqlalchemy import Column, DateTime, String, Text, func

from quicklinks.database import Base


class Snapshot(Base):
    __tablename__ = "snapshots"

    key = Column(String(64), primary_key=True, index=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

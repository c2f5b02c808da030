from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()


class StorageSlot(Base):
    """
    One named slot of the key-value store.
    The value is a JSON snapshot of a whole entity or collection
    (stats, quests, missions or rewards), always written wholesale.
    """
    __tablename__ = 'storage_slots'

    key = Column(String, primary_key=True, index=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

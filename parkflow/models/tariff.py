# parkflow/models/tariff.py
"""
Pricing rules attached to a lot. Never hard-deleted: `deleted_at` marks a
retired tariff, and a tariff already billed on a settled payment is replaced
by a new row instead of being edited.
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, ForeignKey
from parkflow.database import Base


class TariffType:
    HOURLY = "hourly"
    HALF_DAY = "half-day"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    ALL = (HOURLY, HALF_DAY, DAY, WEEK, MONTH)


class Tariff(Base):
    __tablename__ = "tariffs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lot_id = Column(Integer, ForeignKey("parking_lots.id"), nullable=False, index=True)
    tariff_type = Column(String(20), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    conditions = Column(Text)
    created_at = Column(DateTime)
    deleted_at = Column(DateTime)
    deleted_by = Column(Integer)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<Tariff {self.id} lot={self.lot_id} {self.tariff_type}={self.amount}>"

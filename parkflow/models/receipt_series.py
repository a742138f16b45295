# parkflow/models/receipt_series.py
"""Per-type receipt counters. Incremented under a row lock during settlement."""

from sqlalchemy import Column, Integer, String
from parkflow.database import Base


class ReceiptSeries(Base):
    __tablename__ = "receipt_series"

    receipt_type = Column(String(20), primary_key=True)
    series = Column(String(10), nullable=False)
    last_number = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ReceiptSeries {self.series} last={self.last_number}>"

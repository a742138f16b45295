# parkflow/models/payment.py
"""
Charges against an occupancy. `completed` is terminal; a receipt series and
number are stamped at settlement.
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, Boolean, ForeignKey, Index, UniqueConstraint, text
from parkflow.database import Base


class PaymentState:
    PENDING = "pending"
    COMPLETED = "completed"


class ReceiptType:
    RECEIPT = "receipt"     # simplified receipt (boleta)
    INVOICE = "invoice"

    ALL = (RECEIPT, INVOICE)


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("receipt_series", "receipt_number", name="uq_payment_receipt"),
        # One pending charge per occupancy
        Index(
            "uq_payment_occupancy_pending", "occupancy_id", unique=True,
            postgresql_where=text("state = 'pending'"),
            sqlite_where=text("state = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    occupancy_id = Column(Integer, ForeignKey("occupancies.id"), nullable=False, index=True)
    tariff_id = Column(Integer, ForeignKey("tariffs.id"))
    amount = Column(Numeric(10, 2), nullable=False)
    state = Column(String(20), nullable=False, default=PaymentState.PENDING, index=True)
    method_id = Column(Integer)
    received_amount = Column(Numeric(10, 2))
    change_amount = Column(Numeric(10, 2))
    receipt_type = Column(String(20))
    receipt_series = Column(String(10))
    receipt_number = Column(Integer)
    is_simulated = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime)
    settled_at = Column(DateTime)
    settled_by = Column(Integer)

    @property
    def receipt_code(self):
        if self.receipt_number is None:
            return None
        return f"{self.receipt_series}-{self.receipt_number:08d}"

    def __repr__(self):
        return f"<Payment {self.id} occupancy={self.occupancy_id} {self.amount} {self.state}>"

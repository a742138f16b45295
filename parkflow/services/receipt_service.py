# parkflow/services/receipt_service.py
"""
Sequential receipt numbering, one counter per receipt type.
The increment is a single UPDATE inside the settlement transaction: the row
lock it takes is held until commit, so concurrent settlements are numbered
one after the other and a rolled-back settlement gives its number back.
"""

from sqlalchemy.orm import Session
from parkflow.config import settings
from parkflow.errors import InvalidInput
from parkflow.models.payment import ReceiptType
from parkflow.models.receipt_series import ReceiptSeries
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)


def series_for(receipt_type: str) -> str:
    series = settings.RECEIPT_SERIES.get(receipt_type)
    if series is None:
        raise InvalidInput(f"Unknown receipt type '{receipt_type}'")
    return series


def seed_receipt_series(db: Session):
    """Create the counter rows up front. Safe to call multiple times."""
    for receipt_type in ReceiptType.ALL:
        if db.get(ReceiptSeries, receipt_type) is None:
            db.add(ReceiptSeries(receipt_type=receipt_type, series=series_for(receipt_type), last_number=0))
    db.commit()


def next_receipt_number(db: Session, receipt_type: str = ReceiptType.RECEIPT) -> tuple[str, int]:
    """Allocate the next (series, number) for `receipt_type`. Must run inside the caller's transaction."""
    series = series_for(receipt_type)
    rows = (
        db.query(ReceiptSeries)
        .filter(ReceiptSeries.receipt_type == receipt_type)
        .update({ReceiptSeries.last_number: ReceiptSeries.last_number + 1}, synchronize_session=False)
    )
    if rows == 0:
        # Unseeded database: first receipt of this type
        db.add(ReceiptSeries(receipt_type=receipt_type, series=series, last_number=1))
        db.flush()
        return series, 1

    current = (
        db.query(ReceiptSeries.series, ReceiptSeries.last_number)
        .filter(ReceiptSeries.receipt_type == receipt_type)
        .one()
    )
    return current.series, current.last_number

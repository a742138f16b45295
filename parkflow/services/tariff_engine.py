# parkflow/services/tariff_engine.py
"""
Fee calculation. Every flow that needs an amount owed (exit request, direct
exit, settle-and-pay, estimates) goes through compute_amount() here.

Rules, with m = elapsed minutes (always >= 1) and base = tariff amount:
  hourly    ceil(m / 60) * base
  half-day  base for the first 720 min, then each started hour at base / 12
  day       base per started 1440-min block
  week      base per started 10080-min block
  month     base per started 43200-min block
Unknown types are billed hourly.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from sqlalchemy.orm import Session
from parkflow.config import settings
from parkflow.models.occupancy import Occupancy
from parkflow.models.parking_lot import ParkingLot
from parkflow.models.reservation import Reservation
from parkflow.models.space import Space
from parkflow.models.tariff import Tariff, TariffType
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")

BLOCK_MINUTES = {
    TariffType.HALF_DAY: 720,
    TariffType.DAY: 1440,
    TariffType.WEEK: 10080,
    TariffType.MONTH: 43200,
}

# Type names as stored by older lot configurations
TYPE_ALIASES = {
    "hora": TariffType.HOURLY,
    "medio dia": TariffType.HALF_DAY,
    "half_day": TariffType.HALF_DAY,
    "dia": TariffType.DAY,
    "semana": TariffType.WEEK,
    "mes": TariffType.MONTH,
}


@dataclass
class ResolvedTariff:
    tariff_type: str
    amount: Decimal
    tariff_id: Optional[int]   # None for the legacy lot rate and the default rate
    source: str                # reservation | lot | legacy | default


def normalize_type(tariff_type: Optional[str]) -> str:
    key = (tariff_type or "").strip().lower()
    if key in TariffType.ALL:
        return key
    return TYPE_ALIASES.get(key, TariffType.HOURLY)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def compute_amount(tariff, elapsed_minutes: int) -> Decimal:
    """Amount owed for a stay of `elapsed_minutes` under `tariff` (any object with tariff_type and amount)."""
    minutes = max(1, int(elapsed_minutes))
    base = Decimal(str(tariff.amount))
    tariff_type = normalize_type(tariff.tariff_type)

    if tariff_type == TariffType.HALF_DAY:
        block = BLOCK_MINUTES[TariffType.HALF_DAY]
        if minutes <= block:
            amount = base
        else:
            amount = base + _ceil_div(minutes - block, 60) * (base / 12)
    elif tariff_type in BLOCK_MINUTES:
        block = BLOCK_MINUTES[tariff_type]
        if minutes <= block:
            amount = base
        else:
            amount = base + _ceil_div(minutes - block, block) * base
    else:
        amount = _ceil_div(minutes, 60) * base

    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def elapsed_minutes(entry_time: datetime, now: datetime) -> int:
    """Whole minutes between entry and now, never less than one."""
    return max(1, int((now - entry_time).total_seconds() // 60))


def resolve_tariff(db: Session, occupancy: Occupancy, default_rate: Decimal = None) -> ResolvedTariff:
    """
    Pick the tariff that bills an occupancy. First source that resolves wins:
    the tariff chosen on the reservation, the lot's hourly tariff, the lot's
    legacy hourly rate, then the configured default rate.
    """
    if occupancy.reservation_id is not None:
        reservation = db.get(Reservation, occupancy.reservation_id)
        if reservation is not None and reservation.tariff_id is not None:
            selected = db.get(Tariff, reservation.tariff_id)
            if selected is not None and not selected.is_deleted:
                return ResolvedTariff(normalize_type(selected.tariff_type), Decimal(str(selected.amount)),
                                      selected.id, "reservation")

    space = db.get(Space, occupancy.space_id)
    lot = db.get(ParkingLot, space.lot_id) if space is not None else None

    if lot is not None:
        hourly = (
            db.query(Tariff)
            .filter(
                Tariff.lot_id == lot.id,
                Tariff.tariff_type == TariffType.HOURLY,
                Tariff.deleted_at.is_(None),
            )
            .order_by(Tariff.id)
            .first()
        )
        if hourly is not None:
            return ResolvedTariff(TariffType.HOURLY, Decimal(str(hourly.amount)), hourly.id, "lot")

        if lot.hourly_rate is not None:
            return ResolvedTariff(TariffType.HOURLY, Decimal(str(lot.hourly_rate)), None, "legacy")

    rate = settings.DEFAULT_HOURLY_RATE if default_rate is None else default_rate
    logger.warning(f"No tariff configured for occupancy {occupancy.id}, billing default rate {rate}/h")
    return ResolvedTariff(TariffType.HOURLY, Decimal(str(rate)), None, "default")

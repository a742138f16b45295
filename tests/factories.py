# tests/factories.py
"""Test data builders and a controllable clock."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from parkflow.models import ParkingLot, Space, Tariff, TariffType, Vehicle

T0 = datetime(2026, 3, 2, 9, 0)

OPERATOR_ID = 900
ALICE = 1
BOB = 2


class FixedClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class Seed:
    lot_id: int
    spaces: dict = field(default_factory=dict)      # label -> id
    vehicles: dict = field(default_factory=dict)    # user id -> vehicle id
    hourly_tariff_id: int = None
    day_tariff_id: int = None


def add_lot(db, name="Central", hourly=Decimal("5"), day=Decimal("20"), hourly_rate=None,
            spaces=10, operator_id=OPERATOR_ID) -> Seed:
    lot = ParkingLot(name=name, address="Av. Arequipa 100", operator_id=operator_id, hourly_rate=hourly_rate)
    db.add(lot)
    db.flush()
    seed = Seed(lot_id=lot.id)
    for n in range(1, spaces + 1):
        space = Space(lot_id=lot.id, label=str(n))
        db.add(space)
        db.flush()
        seed.spaces[str(n)] = space.id
    if hourly is not None:
        tariff = Tariff(lot_id=lot.id, tariff_type=TariffType.HOURLY, amount=hourly, created_at=T0)
        db.add(tariff)
        db.flush()
        seed.hourly_tariff_id = tariff.id
    if day is not None:
        tariff = Tariff(lot_id=lot.id, tariff_type=TariffType.DAY, amount=day, created_at=T0)
        db.add(tariff)
        db.flush()
        seed.day_tariff_id = tariff.id
    db.commit()
    return seed


def add_vehicle(db, user_id: int, plate: str) -> int:
    vehicle = Vehicle(user_id=user_id, plate_number=plate, registered_at=T0)
    db.add(vehicle)
    db.commit()
    return vehicle.id

# parkflow/dependencies.py
"""FastAPI dependencies: one manager per request, built on the request's DB session."""

from fastapi import Depends
from sqlalchemy.orm import Session
from parkflow.database import get_db
from parkflow.services.notification_service import NotificationService
from parkflow.services.occupancy_service import OccupancyManager
from parkflow.services.payment_service import PaymentSettlement
from parkflow.services.reservation_service import ReservationManager
from parkflow.services.space_registry import SpaceRegistry
from parkflow.services.tariff_service import TariffService


def get_reservation_manager(db: Session = Depends(get_db)) -> ReservationManager:
    return ReservationManager(db, NotificationService(db))


def get_occupancy_manager(db: Session = Depends(get_db)) -> OccupancyManager:
    return OccupancyManager(db, NotificationService(db))


def get_payment_settlement(db: Session = Depends(get_db)) -> PaymentSettlement:
    return PaymentSettlement(db, NotificationService(db))


def get_tariff_service(db: Session = Depends(get_db)) -> TariffService:
    return TariffService(db)


def get_space_registry(db: Session = Depends(get_db)) -> SpaceRegistry:
    return SpaceRegistry(db)

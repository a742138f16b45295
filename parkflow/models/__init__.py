# parkflow: Database Models
# Import all models here for SQLAlchemy discovery

from parkflow.models.parking_lot import ParkingLot               # noqa
from parkflow.models.space import Space, SpaceState              # noqa
from parkflow.models.vehicle import Vehicle                      # noqa
from parkflow.models.tariff import Tariff, TariffType            # noqa
from parkflow.models.reservation import Reservation, ReservationState  # noqa
from parkflow.models.occupancy import Occupancy, OccupancyState  # noqa
from parkflow.models.payment import Payment, PaymentState, ReceiptType  # noqa
from parkflow.models.receipt_series import ReceiptSeries         # noqa
from parkflow.models.notification import Notification            # noqa

# parkflow/services/space_registry.py
"""
Space availability. transition() is the only writer of Space.state: a
compare-and-swap that succeeds only if the space still holds the expected
state, so two concurrent callers can never both claim the same space.
"""

from sqlalchemy.orm import Session
from parkflow.database import transaction
from parkflow.errors import Conflict, InvalidState
from parkflow.models.space import Space, SpaceState
from parkflow.repository import Repository
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)


class SpaceRegistry:
    def __init__(self, db: Session):
        self.db = db
        self.spaces = Repository(db, Space)

    def get(self, space_id: int) -> Space:
        return self.spaces.get_or_404(space_id)

    def lock(self, space_id: int) -> Space:
        """Row-lock the space; serializes reservation checks on it until commit."""
        return self.spaces.get_for_update(space_id)

    def transition(self, space_id: int, from_expected: str, to: str) -> Space:
        rows = self.spaces.update_where(space_id, {"state": from_expected}, {"state": to})
        space = self.get(space_id)
        if rows == 1:
            logger.debug(f"Space {space_id}: {from_expected} → {to}")
            return space

        self.db.refresh(space)
        if space.state == SpaceState.DISABLED and to in (SpaceState.RESERVED, SpaceState.OCCUPIED):
            raise InvalidState(f"Space {space.label} is disabled")
        raise Conflict(f"Space {space.label} is {space.state}, expected {from_expected}")

    def release_hold(self, space_id: int) -> bool:
        """
        Give a reserved space back (cancellation, expiry). A space that is no
        longer reserved, e.g. disabled meanwhile by an operator, is left as is.
        """
        rows = self.spaces.update_where(
            space_id, {"state": SpaceState.RESERVED}, {"state": SpaceState.AVAILABLE}
        )
        if rows == 0:
            logger.warning(f"Space {space_id} was not reserved on release, state left unchanged")
        return rows == 1

    async def set_disabled(self, space_id: int, disabled: bool) -> Space:
        """Operator maintenance: available ↔ disabled. Spaces in use cannot be disabled."""
        with transaction(self.db):
            if disabled:
                space = self.transition(space_id, SpaceState.AVAILABLE, SpaceState.DISABLED)
            else:
                space = self.transition(space_id, SpaceState.DISABLED, SpaceState.AVAILABLE)
        logger.info(f"Space {space_id} {'disabled' if disabled else 'enabled'}")
        return space

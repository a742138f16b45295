# parkflow/services/notification_service.py
"""
Best-effort notification side channel.
Called only after the business transaction has committed; a failure here is
logged and reported as False, never raised, so it cannot undo the operation
that triggered it. Extend here to add push notifications, SMS, email, etc.
"""

from sqlalchemy.orm import Session
from parkflow.models.notification import Notification
from parkflow.utils.clock import utcnow
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    def __init__(self, db: Session, clock=utcnow):
        self.db = db
        self.clock = clock

    async def notify(self, user_id, message: str, category: str) -> bool:
        if user_id is None:
            logger.debug(f"[NOTIFY] no recipient for {category} message, skipped")
            return False
        try:
            self.db.add(Notification(user_id=user_id, message=message, category=category,
                                     is_read=False, created_at=self.clock()))
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"[NOTIFY] could not notify user {user_id} ({category}): {e}")
            return False
        logger.info(f"[NOTIFY][{category.upper()}] user={user_id} {message}")
        return True

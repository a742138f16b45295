# parkflow/models/notification.py
"""
In-app notifications for users and lot operators.
Written by notification_service only, always outside the business transaction.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean
from parkflow.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    message = Column(Text, nullable=False)
    category = Column(String(30), nullable=False, index=True)   # reservation | occupancy | payment
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<Notification {self.id} user={self.user_id} category={self.category}>"

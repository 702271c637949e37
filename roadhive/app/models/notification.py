"""
Notification Database Model.

Outbox of messages handed to the notification collaborator.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum
from sqlalchemy.sql import func
from roadhive.app.db.session import Base
import enum


class NotificationChannel(str, enum.Enum):
    EMAIL = "EMAIL"
    IN_APP = "IN_APP"


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    TRIP_UPDATE = "TRIP_UPDATE"
    DELIVERY_OTP = "DELIVERY_OTP"


class Notification(Base):
    """
    Outbound notification.
    One row per message dispatched to a recipient.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    recipient_email = Column(String(255), nullable=False, index=True)
    channel = Column(Enum(NotificationChannel), default=NotificationChannel.EMAIL, nullable=False)

    # Content
    type = Column(Enum(NotificationType), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    load_id = Column(String(36), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Notification(id={self.id}, to={self.recipient_email}, title='{self.title}')>"

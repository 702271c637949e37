"""
Notification Service.

Hands messages to the outbound notification channel. Delivery of the
delivery OTP is fire-and-forget: callers only learn success or failure.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roadhive.app.models.load import Load
from roadhive.app.models.notification import Notification, NotificationChannel, NotificationType

logger = logging.getLogger("roadhive.notifications")


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        recipient_email: str,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        load_id: Optional[str] = None,
        channel: NotificationChannel = NotificationChannel.EMAIL,
    ) -> Notification:
        """Queue a single notification."""
        notif = Notification(
            recipient_email=recipient_email,
            channel=channel,
            type=type,
            title=title,
            message=message,
            load_id=load_id,
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def send_delivery_otp(db: AsyncSession, load: Load, code: str) -> bool:
        """
        Dispatch a delivery code to the load's receiver.

        Returns:
            True if the message was handed to the channel, False otherwise
        """
        if not load.receiver_email:
            logger.warning("Load %s has no receiver email, OTP not dispatched", load.id)
            return False

        try:
            await NotificationService.create_notification(
                db,
                recipient_email=load.receiver_email,
                title=f"Delivery code for load {load.load_number}",
                message=(
                    f"Your delivery OTP for load {load.load_number} is {code}. "
                    "Share it with the driver only after you have received the goods."
                ),
                type=NotificationType.DELIVERY_OTP,
                load_id=load.id,
            )
        except SQLAlchemyError:
            logger.exception("Failed to queue delivery OTP for load %s", load.id)
            return False

        logger.info("Delivery OTP for load %s dispatched to %s", load.id, load.receiver_email)
        return True

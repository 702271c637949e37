"""
Delivery Verification Service.

A short-lived one-time code gates the Reached -> Completed transition.
States: NOT_REQUESTED -> REQUESTED -> VERIFIED.

- Codes are 6 digits, expire after ``otp_ttl_minutes``
- Resend replaces the code and resets the attempt counter
- Wrong submissions are counted in Redis; past ``otp_max_attempts`` the
  code is locked until a resend
"""

import enum
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from roadhive.app.core.config import settings
from roadhive.app.core.exceptions import (
    InvalidOtpError,
    OtpAlreadyVerifiedError,
    OtpDispatchError,
    OtpExpiredError,
    OtpLockedError,
    OtpNotRequestedError,
    OtpStateError,
)
from roadhive.app.core.redis_client import clear_otp_attempts, register_otp_attempt
from roadhive.app.domain.billing.billing_service import BillingService
from roadhive.app.domain.trip.state_machine import ensure_transition
from roadhive.app.models.load import Load
from roadhive.app.models.load_enums import LoadStatus
from roadhive.app.services.notification_service import NotificationService

logger = logging.getLogger("roadhive.otp")


class OtpState(str, enum.Enum):
    NOT_REQUESTED = "NOT_REQUESTED"
    REQUESTED = "REQUESTED"
    VERIFIED = "VERIFIED"


def otp_state(load: Load) -> OtpState:
    if load.status == LoadStatus.COMPLETED:
        return OtpState.VERIFIED
    if load.delivery_auth_code:
        return OtpState.REQUESTED
    return OtpState.NOT_REQUESTED


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DeliveryOtpService:

    @staticmethod
    async def issue(db: AsyncSession, redis, load: Load) -> datetime:
        """
        Generate, persist and dispatch a new delivery code.

        The previous code, if any, stops being valid as soon as the new one is
        committed.

        Returns:
            Expiry time of the new code

        Raises:
            OtpStateError: load is not Reached
            OtpDispatchError: the code is stored but could not be sent
        """
        if load.status != LoadStatus.REACHED:
            raise OtpStateError(load.status.value)

        code = generate_otp()
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.otp_ttl_minutes)

        load.delivery_auth_code = code
        load.delivery_auth_code_expires_at = expires_at
        await db.commit()
        await clear_otp_attempts(redis, load.id)

        load_id = load.id
        dispatched = await NotificationService.send_delivery_otp(db, load, code)
        if not dispatched:
            # The code stays stored, so a resend can follow
            await db.rollback()
            raise OtpDispatchError(load_id)

        await db.commit()
        logger.info("Delivery OTP issued for load %s, expires %s", load.id, expires_at.isoformat())
        return expires_at

    @staticmethod
    async def verify(db: AsyncSession, redis, load: Load, code: str) -> Load:
        """
        Check a receiver-supplied code and complete the load on a match.

        Raises:
            OtpAlreadyVerifiedError: load already Completed
            OtpStateError: load is not Reached
            OtpNotRequestedError: no code was issued
            OtpExpiredError: code is past its expiry
            OtpLockedError: too many wrong attempts for this code
            InvalidOtpError: code mismatch
        """
        if load.status == LoadStatus.COMPLETED:
            raise OtpAlreadyVerifiedError()
        if load.status != LoadStatus.REACHED:
            raise OtpStateError(load.status.value)
        if not load.delivery_auth_code:
            raise OtpNotRequestedError()

        now = datetime.now(timezone.utc)
        expires_at = _as_utc(load.delivery_auth_code_expires_at)
        if expires_at is not None and expires_at <= now:
            raise OtpExpiredError()

        attempts = await register_otp_attempt(redis, load.id)
        if attempts > settings.otp_max_attempts:
            raise OtpLockedError(settings.otp_max_attempts)

        if not hmac.compare_digest(code.encode(), load.delivery_auth_code.encode()):
            logger.warning("Invalid delivery OTP for load %s (attempt %s)", load.id, attempts)
            raise InvalidOtpError(attempts_remaining=settings.otp_max_attempts - attempts)

        ensure_transition(load.status, LoadStatus.COMPLETED)

        # Conditional on the stored code: a resend or another verification
        # committed in between leaves this one matching no row
        values = BillingService.completion_values(load, now)
        values.update(
            status=LoadStatus.COMPLETED,
            completed_at=now,
            last_updated=now,
            delivery_auth_code=None,
            delivery_auth_code_expires_at=None,
        )
        result = await db.execute(
            update(Load)
            .where(
                Load.id == load.id,
                Load.status == LoadStatus.REACHED,
                Load.delivery_auth_code == code,
            )
            .values(**values)
        )
        if result.rowcount != 1:
            await db.rollback()
            await db.refresh(load)
            if load.status == LoadStatus.COMPLETED:
                raise OtpAlreadyVerifiedError()
            logger.warning("Superseded delivery OTP submitted for load %s", load.id)
            raise InvalidOtpError(attempts_remaining=settings.otp_max_attempts - attempts)

        await db.commit()
        await db.refresh(load)
        await clear_otp_attempts(redis, load.id)

        logger.info("Delivery verified for load %s", load.id)
        return load

"""Booking reservation lifecycle.

Every status change is a single conditional UPDATE keyed on the booking id
and the status the caller expects to move from. When two actors race (an
owner approving while the sweep expires, two payment callbacks), exactly one
UPDATE matches and the other caller gets :class:`InvalidTransition`.

The capacity ledger is only touched around committed state: a unit is
reserved before the booking row is inserted (and given back if the insert
fails), and released only after a releasing transition has committed.
"""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    AuthorizationError,
    InvalidTransition,
    NotFoundError,
    PaymentError,
    ValidationError,
)
from app.domain.booking_state import (
    APPROVED,
    CAPACITY_STATES,
    EXPIRABLE_STATES,
    EXPIRED,
    PAID,
    PAYMENT_FAILED,
    PENDING_APPROVAL,
    PENDING_PAYMENT,
    REJECTED,
    assert_booking_transition,
)
from app.domain.capacity_ledger import (
    CapacityLedger,
    Reservation,
    TimeWindow,
    UnknownReservation,
    UnknownSpaceType,
)
from app.models.booking import Booking, BookingTransition
from app.models.parking import ParkingSpace, SpaceType
from app.models.user import User
from app.schemas.notification import (
    BOOKING_APPROVED,
    BOOKING_EXPIRED,
    BOOKING_PAID,
    BOOKING_PAYMENT_FAILED,
    BOOKING_REJECTED,
    BOOKING_REQUESTED,
    NotificationEvent,
)
from app.services.notification_service import NotificationService, notification_service
from app.services.payment_service import PaymentService, payment_service
from app.utils.booking_number import generate_booking_number
from app.utils.validators import as_utc, billable_hours, mask_reference

logger = logging.getLogger(__name__)

# Module-level ledger shared by every request and the sweep
capacity_ledger = CapacityLedger()


def _utcnow(now: datetime | None = None) -> datetime:
    return as_utc(now) if now else datetime.now(UTC)


class BookingService:
    """Service owning every booking status change."""

    def __init__(
        self,
        ledger: CapacityLedger | None = None,
        notifications: NotificationService | None = None,
        payments: PaymentService | None = None,
        hold_minutes: int | None = None,
    ) -> None:
        self.ledger = ledger or capacity_ledger
        self.notifications = notifications or notification_service
        self.payments = payments or payment_service
        self.hold_duration = timedelta(minutes=hold_minutes or settings.booking_hold_minutes)

    # ==================== COMMANDS ====================

    async def create(
        self,
        db: AsyncSession,
        customer: User,
        space_type_id: UUID,
        window: TimeWindow,
        vehicle_number: str | None = None,
        now: datetime | None = None,
    ) -> Booking:
        """Hold a unit of ``space_type_id`` for ``window`` and record the request.

        Raises:
            ValidationError: Window in the past or too long, own space, inactive space
            NotFoundError: Space type does not exist
            CapacityExceeded: Every unit is held somewhere inside the window
        """
        now = _utcnow(now)

        if window.start < now:
            raise ValidationError("Booking window cannot start in the past")
        hours = billable_hours(window.start, window.end)
        if hours > settings.booking_max_hours:
            raise ValidationError(f"Bookings are limited to {settings.booking_max_hours} hours")

        space_type = await db.get(SpaceType, space_type_id)
        if not space_type:
            raise NotFoundError("Space type", str(space_type_id))
        space = await db.get(ParkingSpace, space_type.parking_space_id)
        if not space or not space.is_active:
            raise ValidationError("This parking space is not accepting bookings")
        if space.owner_id == customer.id:
            raise ValidationError("You cannot book your own parking space")

        booking_number = await generate_booking_number(db, now)

        self.ledger.configure(space_type.id, space_type.capacity)
        reservation = self.ledger.try_reserve(space_type.id, window)

        booking = Booking(
            booking_number=booking_number,
            customer_id=customer.id,
            space_type_id=space_type.id,
            owner_id=space.owner_id,
            start_at=window.start,
            end_at=window.end,
            vehicle_number=vehicle_number,
            hours=hours,
            amount=hours * space_type.price_per_hour,
            currency=space_type.currency or settings.default_currency,
            status=PENDING_APPROVAL,
            reservation_id=reservation.id,
            hold_expires_at=now + self.hold_duration,
            created_at=now,
        )
        try:
            db.add(booking)
            await db.flush()
            await self._record(db, booking.id, None, PENDING_APPROVAL, "customer", customer.id, now)

            if space.instant_booking:
                # Owner pre-approved every request for this space
                booking.status = PENDING_PAYMENT
                booking.approved_at = now
                await self._record(db, booking.id, PENDING_APPROVAL, APPROVED, "owner", space.owner_id, now)
                await self._record(db, booking.id, APPROVED, PENDING_PAYMENT, "owner", space.owner_id, now)

            await db.commit()
        except BaseException:
            # Includes cancellation: no row was committed, so the unit goes back
            await db.rollback()
            self.ledger.release(reservation.space_type_id, reservation.id)
            raise

        logger.info(
            f"Booking {booking_number} created for space type {space_type.id} "
            f"({window.start.isoformat()} - {window.end.isoformat()}), status={booking.status}"
        )

        await self._notify(space.owner_id, BOOKING_REQUESTED, booking, now)
        if booking.status == PENDING_PAYMENT:
            booking = await self._issue_checkout(db, booking, now)
            await self._notify(booking.customer_id, BOOKING_APPROVED, booking, now)

        return booking

    async def approve(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_owner_id: UUID,
        now: datetime | None = None,
    ) -> Booking:
        """Owner accepts a pending request; the booking moves on to payment.

        Raises:
            NotFoundError: Unknown booking
            AuthorizationError: Actor does not own the space
            InvalidTransition: Booking already expired or was acted on
        """
        now = _utcnow(now)
        booking = await self.get(db, booking_id)
        self._assert_owner(booking, actor_owner_id)

        await self._transition(
            db, booking_id, PENDING_APPROVAL, APPROVED, "owner", actor_owner_id, now,
            approved_at=now,
        )
        await self._transition(db, booking_id, APPROVED, PENDING_PAYMENT, "owner", actor_owner_id, now)
        await db.commit()
        booking = await self._reload(db, booking_id)

        logger.info(f"Booking {booking.booking_number} approved by owner {actor_owner_id}")

        booking = await self._issue_checkout(db, booking, now)
        await self._notify(booking.customer_id, BOOKING_APPROVED, booking, now)
        return booking

    async def reject(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_owner_id: UUID,
        now: datetime | None = None,
    ) -> Booking:
        """Owner declines a pending request; its unit is given back."""
        now = _utcnow(now)
        booking = await self.get(db, booking_id)
        self._assert_owner(booking, actor_owner_id)

        held = (booking.space_type_id, booking.reservation_id, booking.booking_number)

        await self._transition(
            db, booking_id, PENDING_APPROVAL, REJECTED, "owner", actor_owner_id, now,
            rejected_at=now,
        )
        await db.commit()
        self._release(*held)
        booking = await self._reload(db, booking_id)

        logger.info(f"Booking {booking.booking_number} rejected by owner {actor_owner_id}")

        await self._notify(booking.customer_id, BOOKING_REJECTED, booking, now)
        return booking

    async def mark_paid(
        self,
        db: AsyncSession,
        payment_ref: str,
        now: datetime | None = None,
        actor: str = "gateway",
        actor_id: UUID | None = None,
    ) -> Booking:
        """Record a successful payment. The unit stays held.

        Calling it again for a booking that is already paid returns the
        booking unchanged.
        """
        now = _utcnow(now)
        booking = await self._get_by_ref_or_404(db, payment_ref)
        if booking.status == PAID:
            logger.info(f"Booking {booking.booking_number} already paid, ignoring repeat confirmation")
            return booking

        try:
            await self._transition(
                db, booking.id, PENDING_PAYMENT, PAID, actor, actor_id, now,
                paid_at=now,
            )
        except InvalidTransition as e:
            if e.current == PAID:
                return await self._reload(db, booking.id)
            raise
        await self.payments.record_outcome(db, payment_ref, "succeeded", now)
        await db.commit()
        booking = await self._reload(db, booking.id)

        logger.info(f"Booking {booking.booking_number} paid ({mask_reference(payment_ref)})")

        await self._notify(booking.owner_id, BOOKING_PAID, booking, now)
        return booking

    async def mark_payment_failed(
        self,
        db: AsyncSession,
        payment_ref: str,
        now: datetime | None = None,
        actor: str = "gateway",
        actor_id: UUID | None = None,
    ) -> Booking:
        """Record a failed payment and give the unit back."""
        now = _utcnow(now)
        booking = await self._get_by_ref_or_404(db, payment_ref)
        booking_id = booking.id
        held = (booking.space_type_id, booking.reservation_id, booking.booking_number)

        await self._transition(
            db, booking_id, PENDING_PAYMENT, PAYMENT_FAILED, actor, actor_id, now,
            failed_at=now,
        )
        await self.payments.record_outcome(db, payment_ref, "failed", now)
        await db.commit()
        self._release(*held)
        booking = await self._reload(db, booking_id)

        logger.info(f"Booking {booking.booking_number} payment failed ({mask_reference(payment_ref)})")

        await self._notify(booking.customer_id, BOOKING_PAYMENT_FAILED, booking, now)
        return booking

    async def expire(
        self,
        db: AsyncSession,
        booking_id: UUID,
        expected_status: str | None = None,
        now: datetime | None = None,
    ) -> Booking:
        """Expire a booking whose hold deadline has passed.

        ``expected_status`` is the status the sweep saw; if the booking has
        moved on since, the update does not match and
        :class:`InvalidTransition` is raised.
        """
        now = _utcnow(now)
        if expected_status is None:
            expected_status = await db.scalar(select(Booking.status).where(Booking.id == booking_id))
            if expected_status is None:
                raise NotFoundError("Booking", str(booking_id))
        if expected_status not in EXPIRABLE_STATES:
            raise InvalidTransition(expected_status, EXPIRED, booking_id=str(booking_id))

        await self._transition(
            db, booking_id, expected_status, EXPIRED, "scheduler", None, now,
            enforce_deadline=True, expired_at=now,
        )
        booking = await self._reload(db, booking_id)
        if booking.payment_ref:
            await self.payments.record_outcome(db, booking.payment_ref, "failed", now)
        await db.commit()
        self._release(booking.space_type_id, booking.reservation_id, booking.booking_number)

        logger.info(f"Booking {booking.booking_number} expired from {expected_status}")

        # The sweep does not wait on customer sockets
        self.notifications.dispatch(
            booking.customer_id, NotificationEvent.for_booking(BOOKING_EXPIRED, booking, now)
        )
        return booking

    # ==================== QUERIES ====================

    async def get(self, db: AsyncSession, booking_id: UUID) -> Booking:
        booking = await db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def get_by_payment_ref(self, db: AsyncSession, payment_ref: str) -> Booking | None:
        result = await db.execute(select(Booking).where(Booking.payment_ref == payment_ref))
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        db: AsyncSession,
        user: User,
        role: str = "customer",
        status: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Booking], int]:
        """List bookings the user takes part in as ``role``.

        Returns:
            (bookings for the page, total matching bookings)
        """
        query = select(Booking)
        if role == "customer":
            query = query.where(Booking.customer_id == user.id)
        elif role == "owner":
            query = query.where(Booking.owner_id == user.id)
        elif role == "admin":
            if user.role != "admin":
                raise AuthorizationError("Admin access required")
        else:
            raise ValidationError(f"Unknown role: {role}")

        if status:
            query = query.where(Booking.status == status)

        total = await db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(Booking.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await db.execute(query)
        return list(result.scalars().all()), total or 0

    async def history(self, db: AsyncSession, booking_id: UUID) -> list[BookingTransition]:
        await self.get(db, booking_id)
        result = await db.execute(
            select(BookingTransition)
            .where(BookingTransition.booking_id == booking_id)
            .order_by(BookingTransition.sequence)
        )
        return list(result.scalars().all())

    async def availability(
        self,
        db: AsyncSession,
        space_type_id: UUID,
        window: TimeWindow,
    ) -> dict:
        """Capacity, peak held units and free units for ``window``."""
        space_type = await db.get(SpaceType, space_type_id)
        if not space_type:
            raise NotFoundError("Space type", str(space_type_id))
        self.ledger.configure(space_type.id, space_type.capacity)
        held = self.ledger.held(space_type.id, window)
        return {
            "space_type_id": space_type.id,
            "start_at": window.start,
            "end_at": window.end,
            "capacity": space_type.capacity,
            "held": held,
            "available": max(0, space_type.capacity - held),
        }

    async def restore_holds(self, db: AsyncSession, now: datetime | None = None) -> int:
        """Rebuild the in-memory ledger from persisted bookings.

        Returns:
            Number of holds restored
        """
        now = _utcnow(now)
        space_types = await db.execute(select(SpaceType.id, SpaceType.capacity))
        for space_type_id, capacity in space_types.all():
            self.ledger.configure(space_type_id, capacity)

        result = await db.execute(
            select(Booking.reservation_id, Booking.space_type_id, Booking.start_at, Booking.end_at)
            .where(
                or_(
                    Booking.status.in_(CAPACITY_STATES),
                    Booking.status == PAID,
                ),
                Booking.end_at > now,
            )
        )
        restored = 0
        for reservation_id, space_type_id, start_at, end_at in result.all():
            self.ledger.restore(
                Reservation(
                    id=reservation_id,
                    space_type_id=space_type_id,
                    window=TimeWindow(start_at, end_at),
                )
            )
            restored += 1

        logger.info(f"Restored {restored} capacity holds into the ledger")
        return restored

    # ==================== INTERNALS ====================

    async def _transition(
        self,
        db: AsyncSession,
        booking_id: UUID,
        expected: str,
        target: str,
        actor: str,
        actor_id: UUID | None,
        now: datetime,
        enforce_deadline: bool = False,
        **values,
    ) -> None:
        """Move ``booking_id`` from ``expected`` to ``target`` or raise."""
        assert_booking_transition(expected, target)

        stmt = update(Booking).where(Booking.id == booking_id, Booking.status == expected)
        if enforce_deadline:
            stmt = stmt.where(Booking.hold_expires_at <= now)
        result = await db.execute(
            stmt.values(status=target, **values).execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            current = await db.scalar(select(Booking.status).where(Booking.id == booking_id))
            if current is None:
                raise NotFoundError("Booking", str(booking_id))
            detail = None
            if current == expected and enforce_deadline:
                detail = "Booking hold has not expired yet"
            raise InvalidTransition(current, target, booking_id=str(booking_id), detail=detail)

        await self._record(db, booking_id, expected, target, actor, actor_id, now)

    async def _record(
        self,
        db: AsyncSession,
        booking_id: UUID,
        from_status: str | None,
        to_status: str,
        actor: str,
        actor_id: UUID | None,
        now: datetime,
    ) -> None:
        sequence = await db.scalar(
            select(func.count()).where(BookingTransition.booking_id == booking_id)
        )
        db.add(
            BookingTransition(
                booking_id=booking_id,
                sequence=sequence or 0,
                from_status=from_status,
                to_status=to_status,
                actor=actor,
                actor_id=actor_id,
                created_at=now,
            )
        )
        await db.flush()

    async def _reload(self, db: AsyncSession, booking_id: UUID) -> Booking:
        booking = await db.get(Booking, booking_id, populate_existing=True)
        if not booking:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def _get_by_ref_or_404(self, db: AsyncSession, payment_ref: str) -> Booking:
        booking = await self.get_by_payment_ref(db, payment_ref)
        if not booking:
            raise NotFoundError("Booking for payment", mask_reference(payment_ref))
        return booking

    async def _issue_checkout(self, db: AsyncSession, booking: Booking, now: datetime) -> Booking:
        """Try to attach a checkout session; the customer can retry on failure."""
        try:
            await self.payments.create_checkout_session(db, booking, now)
        except PaymentError as e:
            logger.warning(
                f"No checkout session for booking {booking.booking_number}, "
                f"customer must request one: {e.detail}"
            )
            return booking
        except InvalidTransition as e:
            # Booking left pending_payment in the meantime
            logger.info(f"Skipped checkout for booking {booking.booking_number}: {e.detail}")
        return await self._reload(db, booking.id)

    def _assert_owner(self, booking: Booking, actor_owner_id: UUID) -> None:
        if booking.owner_id != actor_owner_id:
            raise AuthorizationError("Only the space owner can act on this booking")

    def _release(self, space_type_id: UUID, reservation_id: UUID, booking_number: str) -> None:
        try:
            self.ledger.release(space_type_id, reservation_id)
        except (UnknownSpaceType, UnknownReservation) as e:
            logger.warning(f"Nothing to release for booking {booking_number}: {e}")

    async def _notify(self, user_id: UUID, event: str, booking: Booking, now: datetime) -> int:
        return await self.notifications.notify(
            user_id, NotificationEvent.for_booking(event, booking, now)
        )


# Singleton instance
booking_service = BookingService()

import logging
import secrets
import string
from datetime import timezone

from sqlalchemy.exc import IntegrityError

from servicebook.models.booking import Booking
from servicebook.models.emergency_report import EmergencyReport
from servicebook.models.enums import BookingStatus, PaymentMethod, ProviderStatus
from servicebook.models.provider import Provider, ProviderService
from servicebook.services.wallet_service import resolve_fee_owner
from servicebook.utils.exceptions import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from servicebook.utils.money import calculate_platform_fee, quantize_money, to_decimal
from servicebook.utils.pagination import paginate_query
from servicebook.utils.time_utils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

ALLOWED_DURATIONS = (60, 90, 120)

_BASE36 = string.digits + string.ascii_uppercase

# timestamp column stamped when a booking enters each progression status
STATUS_TIMESTAMPS = {
    BookingStatus.ACCEPTED: "accepted_at",
    BookingStatus.PROVIDER_EN_ROUTE: "en_route_at",
    BookingStatus.PROVIDER_ARRIVED: "arrived_at",
    BookingStatus.IN_PROGRESS: "started_at",
    BookingStatus.COMPLETED: "completed_at",
}

STATUS_MESSAGES = {
    BookingStatus.PROVIDER_EN_ROUTE: ("Provider on the way", "Your provider is on the way to {address}."),
    BookingStatus.PROVIDER_ARRIVED: ("Provider has arrived", "Your provider has arrived for booking {number}."),
    BookingStatus.IN_PROGRESS: ("Session started", "Your {service} session has started."),
    BookingStatus.COMPLETED: ("Session completed", "Booking {number} is complete. Thank you!"),
}


def _base36(number):
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = _BASE36[rem] + out
    return out or "0"


def generate_booking_number(now=None):
    """``CM`` + base36 millisecond timestamp + 4 random base36 chars."""
    now = now or utcnow()
    millis = int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"CM{_base36(millis)}{suffix}"


def next_status(current):
    """Successor of ``current`` in the progression chain, or None."""
    if current not in BookingStatus.PROGRESSION:
        return None
    idx = BookingStatus.PROGRESSION.index(current)
    if idx + 1 >= len(BookingStatus.PROGRESSION):
        return None
    return BookingStatus.PROGRESSION[idx + 1]


def price_for_duration(provider_service, duration):
    price_60 = to_decimal(provider_service.price_60)
    if duration == 60:
        return quantize_money(price_60)
    if duration == 90:
        return quantize_money(to_decimal(provider_service.price_90) or price_60 * to_decimal("1.5"))
    return quantize_money(to_decimal(provider_service.price_120) or price_60 * 2)


class BookingService:
    """Booking state machine and its side effects.

    All checks run before the first write. Any failure after a write rolls
    the session back, so a rejected call leaves nothing behind.
    """

    def __init__(self, session, wallet, notifications, fee_rate, clock=utcnow, max_number_attempts=5):
        self.session = session
        self.wallet = wallet
        self.notifications = notifications
        self.fee_rate = fee_rate
        self.clock = clock
        self.max_number_attempts = max_number_attempts

    # ------------------------------------------------------------
    # queries
    # ------------------------------------------------------------
    def get_booking(self, actor_id, booking_id):
        booking = self._load(booking_id)
        if not booking.is_party(actor_id):
            raise Forbidden("You are not a party to this booking")
        return booking

    def list_bookings(self, actor_id, role="customer", status=None, page=1, limit=20):
        q = self.session.query(Booking)
        if role == "provider":
            provider = self._provider_for_user(actor_id)
            q = q.filter(Booking.provider_id == provider.id, Booking.hidden_by_provider.is_(False))
        else:
            q = q.filter(Booking.customer_id == actor_id, Booking.hidden_by_customer.is_(False))

        if status:
            statuses = [s.strip().upper() for s in status.split(",") if s.strip()]
            unknown = [s for s in statuses if s not in BookingStatus.ALL]
            if unknown:
                raise ValidationError("Unknown booking status", {"status": [f"Unknown status: {', '.join(unknown)}"]})
            q = q.filter(Booking.status.in_(statuses))

        return paginate_query(q.order_by(Booking.created_at.desc()), page, limit)

    # ------------------------------------------------------------
    # creation
    # ------------------------------------------------------------
    def create_booking(self, customer_id, data):
        now = self.clock()
        duration = data.get("duration")
        scheduled_at = to_naive_utc(data.get("scheduled_at"))
        payment_method = data.get("payment_method", PaymentMethod.CASH)

        errors = {}
        if duration not in ALLOWED_DURATIONS:
            errors["duration"] = [f"Must be one of {', '.join(str(d) for d in ALLOWED_DURATIONS)}"]
        if scheduled_at is None or scheduled_at <= now:
            errors["scheduled_at"] = ["Must be in the future"]
        if payment_method not in PaymentMethod.ALL:
            errors["payment_method"] = [f"Must be one of {', '.join(PaymentMethod.ALL)}"]
        if not (data.get("address_text") or "").strip():
            errors["address_text"] = ["Missing data for required field."]
        if errors:
            raise ValidationError("Invalid booking request", errors)

        provider = self.session.get(Provider, data.get("provider_id"))
        if not provider or provider.status != ProviderStatus.APPROVED:
            raise NotFound("Provider not found")
        if provider.user_id == customer_id:
            raise ValidationError("Cannot book yourself", {"provider_id": ["Cannot book yourself"]})

        offer = (
            self.session.query(ProviderService)
            .filter_by(provider_id=provider.id, service_id=data.get("service_id"))
            .first()
        )
        if not offer or not offer.service or not offer.service.is_active:
            raise ValidationError("Service not available", {"service_id": ["Provider does not offer this service"]})

        service_amount = price_for_duration(offer, duration)
        platform_fee = calculate_platform_fee(service_amount, self.fee_rate)
        provider_earning = service_amount - platform_fee

        booking = None
        for attempt in range(1, self.max_number_attempts + 1):
            booking = Booking(
                booking_number=generate_booking_number(now),
                customer_id=customer_id,
                provider_id=provider.id,
                service_id=offer.service_id,
                duration=duration,
                scheduled_at=scheduled_at,
                status=BookingStatus.PENDING,
                payment_method=payment_method,
                service_amount=service_amount,
                platform_fee=platform_fee,
                provider_earning=provider_earning,
                total_amount=service_amount,
                address_text=data["address_text"].strip(),
                address_notes=data.get("address_notes"),
                latitude=data.get("latitude"),
                longitude=data.get("longitude"),
                customer_notes=data.get("customer_notes"),
                created_at=now,
            )
            self.session.add(booking)
            try:
                self.session.commit()
                break
            except IntegrityError:
                self.session.rollback()
                if not self._booking_number_taken(booking.booking_number):
                    raise
                logger.warning("Booking number collision on %s (attempt %d)", booking.booking_number, attempt)
        else:
            raise Conflict("Could not allocate a unique booking number", {"attempts": self.max_number_attempts})

        logger.info("Booking %s created by %s for provider %s", booking.booking_number, customer_id, provider.id)
        self.notifications.notify(
            provider.user_id,
            "booking_request",
            "New booking request",
            f"{offer.service.name} ({duration} min) on {scheduled_at:%b %d at %I:%M %p}",
            {"booking_id": booking.id},
        )
        return booking

    # ------------------------------------------------------------
    # provider decisions
    # ------------------------------------------------------------
    def accept_booking(self, actor_id, booking_id):
        booking = self._load(booking_id)
        provider = self._require_provider(booking, actor_id)
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransition(booking.status, BookingStatus.ACCEPTED)

        try:
            self._claim(booking, (BookingStatus.PENDING,), BookingStatus.ACCEPTED, accepted_at=self.clock())
            if booking.payment_method == PaymentMethod.CASH:
                # cash is collected by the provider, so the fee comes out of the wallet
                owner_type, owner_id = resolve_fee_owner(provider)
                self.wallet.deduct_platform_fee(owner_type, owner_id, booking.id, booking.service_amount, commit=False)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Booking %s accepted by provider %s", booking.booking_number, provider.id)
        self.notifications.notify(
            booking.customer_id,
            "booking_accepted",
            "Booking confirmed",
            f"{provider.display_name or 'Your provider'} accepted booking {booking.booking_number}.",
            {"booking_id": booking.id},
        )
        return booking

    def reject_booking(self, actor_id, booking_id, reason=None):
        booking = self._load(booking_id)
        self._require_provider(booking, actor_id)
        return self._cancel(booking, actor_id, reason or "Rejected by provider")

    def cancel_booking(self, actor_id, booking_id, reason=None):
        booking = self._load(booking_id)
        if not booking.is_party(actor_id):
            raise Forbidden("Only the customer or the provider can cancel this booking")
        return self._cancel(booking, actor_id, reason or "Cancelled")

    def _cancel(self, booking, actor_id, reason):
        if booking.status not in BookingStatus.CANCELLABLE:
            raise InvalidTransition(booking.status, BookingStatus.CANCELLED)

        try:
            self._claim(
                booking,
                BookingStatus.CANCELLABLE,
                BookingStatus.CANCELLED,
                cancelled_at=self.clock(),
                cancelled_by=actor_id,
                cancel_reason=reason,
            )
            self.wallet.refund_platform_fee(booking.id, commit=False)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Booking %s cancelled by %s: %s", booking.booking_number, actor_id, reason)
        other = booking.provider_user_id if actor_id == booking.customer_id else booking.customer_id
        self.notifications.notify(
            other,
            "booking_cancelled",
            "Booking cancelled",
            f"Booking {booking.booking_number} was cancelled. Reason: {reason}",
            {"booking_id": booking.id, "reason": reason},
        )
        return booking

    # ------------------------------------------------------------
    # progression
    # ------------------------------------------------------------
    def update_booking_status(self, actor_id, booking_id, new_status):
        if new_status not in BookingStatus.ALL:
            raise ValidationError("Unknown booking status", {"status": [f"Must be one of {', '.join(BookingStatus.ALL)}"]})

        booking = self._load(booking_id)
        provider = self._require_provider(booking, actor_id)
        if next_status(booking.status) != new_status:
            raise InvalidTransition(booking.status, new_status)

        now = self.clock()
        try:
            self._claim(booking, (booking.status,), new_status, **{STATUS_TIMESTAMPS[new_status]: now})
            if new_status == BookingStatus.COMPLETED:
                self._settle_completion(booking, provider)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Booking %s moved to %s", booking.booking_number, new_status)
        title, body = STATUS_MESSAGES[new_status]
        self.notifications.notify(
            booking.customer_id,
            "booking_status",
            title,
            body.format(address=booking.address_text, number=booking.booking_number,
                        service=booking.service.name if booking.service else "booked"),
            {"booking_id": booking.id, "status": new_status},
        )
        return booking

    def _settle_completion(self, booking, provider):
        provider.completed_bookings = (provider.completed_bookings or 0) + 1
        earning = to_decimal(booking.provider_earning)
        if booking.payment_method == PaymentMethod.CASH:
            # cash already in the provider's hands; only the lifetime figure moves
            provider.total_earnings = to_decimal(provider.total_earnings or 0) + earning
            return
        if earning <= 0:
            return
        owner_type, owner_id = resolve_fee_owner(provider)
        self.wallet.credit_earning(owner_type, owner_id, booking.id, earning, commit=False)
        if owner_id != provider.id:
            provider.total_earnings = to_decimal(provider.total_earnings or 0) + earning

    # ------------------------------------------------------------
    # live location / safety
    # ------------------------------------------------------------
    def update_booking_location(self, actor_id, booking_id, latitude, longitude, accuracy=None):
        booking = self._load(booking_id)
        self._require_provider(booking, actor_id)
        self._require_active(booking, "Location sharing")

        booking.current_latitude = latitude
        booking.current_longitude = longitude
        booking.location_accuracy = accuracy
        booking.location_updated_at = self.clock()
        self.session.commit()
        return booking

    def get_provider_location(self, actor_id, booking_id):
        booking = self.get_booking(actor_id, booking_id)
        self._require_active(booking, "Location tracking")
        return {
            "latitude": booking.current_latitude,
            "longitude": booking.current_longitude,
            "accuracy": booking.location_accuracy,
            "updated_at": booking.location_updated_at,
        }

    def trigger_sos(self, actor_id, booking_id, message=None, latitude=None, longitude=None):
        booking = self.get_booking(actor_id, booking_id)
        self._require_active(booking, "SOS")

        reported = booking.provider_user_id if actor_id == booking.customer_id else booking.customer_id
        report = EmergencyReport(
            booking_id=booking.id,
            reporter_id=actor_id,
            reported_id=reported,
            message=f"SOS triggered: {message or 'Emergency'}",
            latitude=latitude if latitude is not None else booking.current_latitude,
            longitude=longitude if longitude is not None else booking.current_longitude,
            created_at=self.clock(),
        )
        self.session.add(report)
        self.session.commit()

        logger.critical("SOS %s raised on booking %s by user %s", report.id, booking.booking_number, actor_id)
        return report

    def hide_booking(self, actor_id, booking_id):
        booking = self.get_booking(actor_id, booking_id)
        if actor_id == booking.customer_id:
            booking.hidden_by_customer = True
        if actor_id == booking.provider_user_id:
            booking.hidden_by_provider = True
        self.session.commit()
        return booking

    # ------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------
    def _load(self, booking_id):
        booking = self.session.get(Booking, booking_id)
        if not booking:
            raise NotFound("Booking not found")
        return booking

    def _claim(self, booking, allowed, new_status, **values):
        """Move the stored row to ``new_status`` only while its status is still in ``allowed``.

        The check and the write are one conditional UPDATE, so a caller acting on
        a stale read loses to whoever changed the row first. On PostgreSQL the
        UPDATE also holds the row lock until commit.
        """
        claimed = (
            self.session.query(Booking)
            .filter(Booking.id == booking.id, Booking.status.in_(allowed))
            .update({"status": new_status, **values}, synchronize_session=False)
        )
        if not claimed:
            current = self.session.query(Booking.status).filter(Booking.id == booking.id).scalar()
            raise InvalidTransition(current, new_status)
        booking.status = new_status
        for name, value in values.items():
            setattr(booking, name, value)

    def _provider_for_user(self, user_id):
        provider = self.session.query(Provider).filter_by(user_id=user_id).first()
        if not provider:
            raise NotFound("Provider not found")
        return provider

    def _require_provider(self, booking, actor_id):
        provider = booking.provider
        if not provider or provider.user_id != actor_id:
            raise Forbidden("Only the assigned provider can do this")
        return provider

    def _require_active(self, booking, what):
        if booking.status not in BookingStatus.ACTIVE:
            raise InvalidTransition(
                booking.status,
                booking.status,
                message=f"{what} is only available for active bookings",
            )

    def _booking_number_taken(self, number):
        return self.session.query(Booking.id).filter_by(booking_number=number).first() is not None

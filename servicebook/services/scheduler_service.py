import logging
import threading
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from servicebook.models.booking import Booking
from servicebook.models.enums import BookingStatus
from servicebook.models.reminder_log import ReminderLog
from servicebook.utils.time_utils import isoformat_z, utcnow

logger = logging.getLogger(__name__)


class ReminderOffset:
    """A one-time reminder due ``lead_minutes`` before a booking starts.

    A booking qualifies while its start lies in ``[now + lead - window,
    now + lead]``. The window must be at least one tick wide or bookings can
    slip between two consecutive scans.
    """

    def __init__(self, key, lead_minutes, window_minutes, title, body, push_type, extra_data=None):
        self.key = key
        self.lead_minutes = lead_minutes
        self.window_minutes = window_minutes
        self.title = title
        self.body = body
        self.push_type = push_type
        self.extra_data = extra_data or {}

    def window(self, now):
        return (
            now + timedelta(minutes=self.lead_minutes - self.window_minutes),
            now + timedelta(minutes=self.lead_minutes),
        )

    def __repr__(self):
        return f"ReminderOffset({self.key!r}, lead={self.lead_minutes}, window={self.window_minutes})"


DEFAULT_OFFSETS = (
    ReminderOffset(
        "60min", 60, 10,
        title="Upcoming Appointment - 1 Hour",
        body="{service} with {customer} at {time}. Get ready!",
        push_type="booking_reminder",
    ),
    ReminderOffset(
        "15min", 15, 5,
        title="Starting Soon - 15 Minutes!",
        body="{service} with {customer}. Time to head out!",
        push_type="booking_urgent",
        extra_data={"urgent": True},
    ),
)

SENT = "sent"
ALREADY_SENT = "already_sent"
SKIPPED = "skipped"


def _clock_time(value):
    return value.strftime("%I:%M %p").lstrip("0")


class ReminderScheduler:
    """Polls for accepted bookings that are about to start and reminds the provider.

    Delivery is at most once per (booking, offset). The durable
    ``ReminderLog`` row, unique on that pair, is committed together with the
    notification record, so neither a restart nor a second scheduler process
    can send the same reminder twice. The in-memory ``_notified`` map only
    saves the lookup for pairs this process already handled and is pruned
    once a booking is ``evict_after`` past its start.
    """

    def __init__(self, session, notifications, interval_seconds=300, offsets=DEFAULT_OFFSETS,
                 evict_after=timedelta(hours=2), clock=utcnow, app=None):
        for offset in offsets:
            if offset.window_minutes * 60 < interval_seconds:
                raise ValueError(
                    f"Reminder window for {offset.key} ({offset.window_minutes} min) is narrower "
                    f"than the scheduler interval ({interval_seconds} s); bookings would be missed"
                )
        self.session = session
        self.notifications = notifications
        self.interval_seconds = interval_seconds
        self.offsets = tuple(offsets)
        self.evict_after = evict_after
        self.clock = clock
        self.app = app

        self._notified = {}
        self._stop_event = threading.Event()
        self._thread = None

    # ------------------------------------------------------------
    # scanning
    # ------------------------------------------------------------
    def run_once(self, now=None):
        """Run every offset scan once; returns the number of reminders sent."""
        now = now or self.clock()
        sent = 0
        for offset in self.offsets:
            sent += self.scan(offset, now)
        self._evict(now)
        return sent

    def scan(self, offset, now):
        start, end = offset.window(now)
        try:
            bookings = (
                self.session.query(Booking)
                .filter(Booking.status == BookingStatus.ACCEPTED)
                .filter(Booking.provider_id.isnot(None))
                .filter(Booking.scheduled_at >= start, Booking.scheduled_at <= end)
                .order_by(Booking.scheduled_at)
                .all()
            )
        except Exception:
            self.session.rollback()
            logger.exception("[Scheduler] %s reminder query failed", offset.key)
            return 0

        sent = 0
        for booking in bookings:
            key = (booking.id, offset.key)
            if key in self._notified:
                continue
            try:
                outcome = self._remind(booking, offset, now)
            except Exception:
                self.session.rollback()
                logger.exception("[Scheduler] %s reminder for booking %s failed", offset.key, booking.id)
                continue

            if outcome == SKIPPED:
                continue
            self._notified[key] = booking.scheduled_at
            if outcome == SENT:
                sent += 1
        return sent

    def _remind(self, booking, offset, now):
        if self.session.query(ReminderLog.id).filter_by(booking_id=booking.id, offset_key=offset.key).first():
            return ALREADY_SENT

        provider_user = booking.provider.user if booking.provider else None
        customer = booking.customer
        service = booking.service
        if not provider_user or not customer or not service:
            return SKIPPED

        customer_name = customer.display_name
        body = offset.body.format(service=service.name, customer=customer_name,
                                  time=_clock_time(booking.scheduled_at))
        data = {
            "booking_id": booking.id,
            "service_name": service.name,
            "customer_name": customer_name,
            "scheduled_at": isoformat_z(booking.scheduled_at),
            **offset.extra_data,
        }

        notif = self.notifications.create(provider_user.id, "booking_reminder", offset.title, body, data, commit=False)
        self.session.add(ReminderLog(booking_id=booking.id, offset_key=offset.key,
                                     notification_id=notif.id, sent_at=now))
        try:
            self.session.commit()
        except IntegrityError:
            # another scheduler instance recorded this reminder first
            self.session.rollback()
            return ALREADY_SENT

        if self.notifications.push.send_to_user(provider_user.id, offset.title, body,
                                                {"type": offset.push_type, "booking_id": booking.id}):
            notif.push_sent = True
            notif.push_sent_at = utcnow()
            self.session.commit()

        logger.info("[Scheduler] Sent %s reminder for booking %s to provider user %s",
                    offset.key, booking.id, provider_user.id)
        return SENT

    def _evict(self, now):
        cutoff = now - self.evict_after
        stale = [key for key, scheduled_at in self._notified.items() if scheduled_at < cutoff]
        for key in stale:
            del self._notified[key]

    # ------------------------------------------------------------
    # loop control
    # ------------------------------------------------------------
    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            logger.info("[Scheduler] Already running")
            return
        logger.info("[Scheduler] Starting booking reminder scheduler (every %ss)", self.interval_seconds)
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="reminder-scheduler", daemon=True)
        self._thread.start()

    def run_forever(self):
        # first tick runs immediately
        while not self._stop_event.is_set():
            self._tick()
            self._stop_event.wait(self.interval_seconds)

    def stop(self, timeout=10):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("[Scheduler] Stopped")

    def _tick(self):
        try:
            if self.app is not None:
                with self.app.app_context():
                    self.run_once()
            else:
                self.run_once()
        except Exception:
            logger.exception("[Scheduler] Tick failed")

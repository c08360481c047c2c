"""Reminder scheduler: window selection, at-most-once delivery and loop control."""
import threading
from datetime import timedelta

import pytest

from servicebook.extensions import db
from servicebook.models.enums import BookingStatus
from servicebook.models.notification import Notification
from servicebook.models.reminder_log import ReminderLog
from servicebook.services.scheduler_service import DEFAULT_OFFSETS, ReminderOffset, ReminderScheduler
from servicebook.utils.time_utils import utcnow


@pytest.fixture
def now():
    return utcnow().replace(microsecond=0)


@pytest.fixture
def make_scheduler(services):
    def _make(**kwargs):
        kwargs.setdefault("interval_seconds", 300)
        return ReminderScheduler(db.session, services["notifications"], **kwargs)
    return _make


@pytest.fixture
def scheduler(make_scheduler):
    return make_scheduler()


def accepted_booking(factory, starts_at, **kwargs):
    kwargs.setdefault("status", BookingStatus.ACCEPTED)
    return factory.booking(scheduled_at=starts_at, **kwargs)


class TestWindows:
    def test_booking_55_minutes_out_gets_only_hour_reminder(self, scheduler, factory, push, now):
        booking = accepted_booking(factory, now + timedelta(minutes=55))
        hour, quarter = DEFAULT_OFFSETS

        assert scheduler.scan(quarter, now) == 0
        assert scheduler.scan(hour, now) == 1

        notif = Notification.query.one()
        assert notif.user_id == booking.provider.user_id
        assert notif.type == "booking_reminder"
        assert notif.title == "Upcoming Appointment - 1 Hour"
        assert notif.data["booking_id"] == booking.id
        assert notif.push_sent is True
        assert push.sent[0]["data"] == {"type": "booking_reminder", "booking_id": booking.id}

    def test_fifteen_minute_reminder_is_urgent(self, scheduler, factory, push, now):
        booking = accepted_booking(factory, now + timedelta(minutes=12))

        assert scheduler.run_once(now) == 1

        notif = Notification.query.one()
        assert notif.title == "Starting Soon - 15 Minutes!"
        assert notif.data["urgent"] is True
        assert push.sent[0]["data"] == {"type": "booking_urgent", "booking_id": booking.id}

    @pytest.mark.parametrize("minutes", [49, 61, 16, 5])
    def test_outside_every_window(self, scheduler, factory, now, minutes):
        accepted_booking(factory, now + timedelta(minutes=minutes))
        assert scheduler.run_once(now) == 0

    def test_window_edges_are_inclusive(self, scheduler, factory, now):
        accepted_booking(factory, now + timedelta(minutes=50))
        accepted_booking(factory, now + timedelta(minutes=60))
        assert scheduler.run_once(now) == 2

    @pytest.mark.parametrize("status", [BookingStatus.PENDING, BookingStatus.PROVIDER_EN_ROUTE,
                                        BookingStatus.CANCELLED])
    def test_only_accepted_bookings(self, scheduler, factory, now, status):
        accepted_booking(factory, now + timedelta(minutes=55), status=status)
        assert scheduler.run_once(now) == 0

    def test_body_mentions_service_and_customer(self, scheduler, factory, now):
        customer = factory.user(full_name="Maria Santos")
        service = factory.service(name="Deep Tissue")
        accepted_booking(factory, now + timedelta(minutes=55), customer=customer, service=service)

        scheduler.run_once(now)

        body = Notification.query.one().body
        assert "Deep Tissue with Maria Santos" in body

    def test_missing_device_token_still_records_reminder(self, scheduler, factory, push, now):
        provider = factory.provider(user=factory.user(role="provider", fcm_token=None))
        accepted_booking(factory, now + timedelta(minutes=55), provider=provider)

        assert scheduler.run_once(now) == 1

        assert Notification.query.one().push_sent is False
        assert push.sent == []


class TestAtMostOnce:
    def test_second_pass_does_not_repeat(self, scheduler, factory, push, now):
        accepted_booking(factory, now + timedelta(minutes=55))

        assert scheduler.run_once(now) == 1
        assert scheduler.run_once(now + timedelta(minutes=5)) == 0

        assert Notification.query.count() == 1
        assert len(push.sent) == 1

    def test_restarted_scheduler_remembers(self, make_scheduler, factory, now):
        accepted_booking(factory, now + timedelta(minutes=55))
        assert make_scheduler().run_once(now) == 1

        assert make_scheduler().run_once(now + timedelta(minutes=1)) == 0
        assert ReminderLog.query.count() == 1
        assert Notification.query.count() == 1

    def test_each_offset_fires_once_as_booking_approaches(self, scheduler, factory, now):
        booking = accepted_booking(factory, now + timedelta(minutes=58))

        total = 0
        for step in range(0, 60, 5):
            total += scheduler.run_once(now + timedelta(minutes=step))

        assert total == 2
        keys = sorted(r.offset_key for r in ReminderLog.query.filter_by(booking_id=booking.id))
        assert keys == ["15min", "60min"]

    def test_failure_on_one_booking_does_not_block_others(self, scheduler, factory, now, monkeypatch):
        bad = accepted_booking(factory, now + timedelta(minutes=55))
        good = accepted_booking(factory, now + timedelta(minutes=56))
        original = scheduler._remind

        def flaky(booking, offset, when):
            if booking.id == bad.id:
                raise RuntimeError("boom")
            return original(booking, offset, when)

        monkeypatch.setattr(scheduler, "_remind", flaky)
        assert scheduler.run_once(now) == 1
        assert [n.data["booking_id"] for n in Notification.query.all()] == [good.id]

        # the failed booking is retried on the next pass
        monkeypatch.setattr(scheduler, "_remind", original)
        assert scheduler.run_once(now) == 1

    def test_notified_cache_is_evicted(self, scheduler, factory, now):
        booking = accepted_booking(factory, now + timedelta(minutes=55))
        scheduler.run_once(now)
        assert (booking.id, "60min") in scheduler._notified

        scheduler.run_once(now + timedelta(hours=3))

        assert scheduler._notified == {}


class TestConfiguration:
    def test_interval_wider_than_window_is_rejected(self, make_scheduler):
        with pytest.raises(ValueError):
            make_scheduler(interval_seconds=301)

    def test_custom_offsets_are_checked(self, make_scheduler):
        narrow = ReminderOffset("5min", 5, 1, title="t", body="b", push_type="booking_reminder")
        with pytest.raises(ValueError):
            make_scheduler(interval_seconds=120, offsets=[narrow])
        assert make_scheduler(interval_seconds=60, offsets=[narrow]).offsets == (narrow,)

    def test_offset_window(self, now):
        hour = DEFAULT_OFFSETS[0]
        assert hour.window(now) == (now + timedelta(minutes=50), now + timedelta(minutes=60))


class TestLoop:
    def test_start_ticks_immediately_and_stops(self, make_scheduler):
        scheduler = make_scheduler()
        ticked = threading.Event()
        scheduler.run_once = lambda now=None: ticked.set() or 0

        scheduler.start()
        try:
            assert ticked.wait(2)
            assert scheduler.running
        finally:
            scheduler.stop(timeout=2)

        assert not scheduler.running

    def test_tick_swallows_errors(self, make_scheduler):
        scheduler = make_scheduler()

        def explode(now=None):
            raise RuntimeError("database unavailable")

        scheduler.run_once = explode
        scheduler._tick()

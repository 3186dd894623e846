"""Tests for waitlist selection, notification and expiry"""

from datetime import datetime, timedelta

import pytest

from booking_engine import models
from booking_engine.config import WAITLIST_MAX_NOTIFICATIONS
from booking_engine.domain.bookings.service import BookingService
from booking_engine.domain.waitlist.service import WaitlistService, entry_matches_slot
from booking_engine.exceptions import ConflictError, ForbiddenError
from booking_engine.states import WaitlistPriority, WaitlistStatus

from .conftest import MONDAY, at


def add_entry(db, business, service, customer_id, priority=WaitlistPriority.NORMAL, created_at=None, **kwargs):
    entry = WaitlistService(db).add_entry(
        business.id, customer_id, service_id=service.id, priority=priority, **kwargs
    )
    if created_at:
        entry.created_at = created_at
        db.commit()
    return entry


class TestMatching:
    def test_no_preferences_match_any_slot(self, db, business, service):
        entry = add_entry(db, business, service, 1)

        assert entry_matches_slot(entry, at(MONDAY, "10:00"), at(MONDAY, "11:00"), "UTC")

    def test_preferred_date_must_match(self, db, business, service):
        entry = add_entry(db, business, service, 1, preferred_date=MONDAY + timedelta(days=1))

        assert not entry_matches_slot(entry, at(MONDAY, "10:00"), at(MONDAY, "11:00"), "UTC")

    def test_preferred_window_in_business_time(self, db, business, service):
        entry = add_entry(db, business, service, 1, preferred_time_start="09:00", preferred_time_end="12:00")

        # 10:00 in Tokyo is 01:00 UTC
        assert entry_matches_slot(entry, at(MONDAY, "10:00", "Asia/Tokyo"), at(MONDAY, "11:00", "Asia/Tokyo"), "Asia/Tokyo")
        assert not entry_matches_slot(entry, at(MONDAY, "14:00"), at(MONDAY, "15:00"), "UTC")


class TestSelection:
    def test_higher_priority_wins_over_earlier_entry(self, db, business, service):
        high = add_entry(db, business, service, 1, WaitlistPriority.HIGH, created_at=datetime(2030, 1, 1, 10, 0))
        vip = add_entry(db, business, service, 2, WaitlistPriority.VIP, created_at=datetime(2030, 1, 1, 10, 5))
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id, customer_id=9)

        result = bookings.cancel_booking(booking.id)

        assert result["waitlist_entry_id"] == vip.id
        db.refresh(high)
        assert high.status == WaitlistStatus.ACTIVE

    def test_same_priority_first_come_first_served(self, db, business, service):
        first = add_entry(db, business, service, 1, created_at=datetime(2030, 1, 1, 9, 0))
        add_entry(db, business, service, 2, created_at=datetime(2030, 1, 1, 9, 30))
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        result = bookings.cancel_booking(booking.id)

        assert result["waitlist_entry_id"] == first.id

    def test_notification_sets_offer_and_outbox(self, db, business, service):
        entry = add_entry(db, business, service, 1)
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        bookings.cancel_booking(booking.id)

        db.refresh(entry)
        assert entry.status == WaitlistStatus.NOTIFIED
        assert entry.notification_count == 1
        assert entry.offered_start_at == booking.start_at
        assert entry.response_deadline > entry.last_notified_at
        kinds = [o.kind for o in db.query(models.NotificationOutbox).all()]
        assert "waitlist_slot_available" in kinds

    def test_no_matching_entry(self, db, business, service):
        add_entry(db, business, service, 1, preferred_date=MONDAY + timedelta(days=6))
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        assert bookings.cancel_booking(booking.id)["waitlist_entry_id"] is None

    def test_overdue_entry_rejoins_queue_before_selection(self, db, business, service):
        waitlist = WaitlistService(db)
        vip = add_entry(db, business, service, 1, WaitlistPriority.VIP)
        low = add_entry(db, business, service, 2, WaitlistPriority.LOW)
        waitlist.notify_entry(vip.id)
        vip.response_deadline = datetime(2020, 1, 1)
        db.commit()
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        result = bookings.cancel_booking(booking.id)

        assert result["waitlist_entry_id"] == vip.id
        db.refresh(vip)
        db.refresh(low)
        assert vip.status == WaitlistStatus.NOTIFIED
        assert vip.notification_count == 2
        assert low.status == WaitlistStatus.ACTIVE

    def test_overdue_entry_at_cap_is_skipped(self, db, business, service):
        waitlist = WaitlistService(db)
        vip = add_entry(db, business, service, 1, WaitlistPriority.VIP)
        low = add_entry(db, business, service, 2, WaitlistPriority.LOW)
        waitlist.notify_entry(vip.id)
        vip.notification_count = WAITLIST_MAX_NOTIFICATIONS
        vip.response_deadline = datetime(2020, 1, 1)
        db.commit()
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        result = bookings.cancel_booking(booking.id)

        assert result["waitlist_entry_id"] == low.id
        db.refresh(vip)
        assert vip.status == WaitlistStatus.EXPIRED


class TestExpiry:
    def test_missed_deadline_requeues_under_cap(self, db, business, service):
        waitlist = WaitlistService(db)
        entry = add_entry(db, business, service, 1)
        waitlist.notify_entry(entry.id)
        entry.response_deadline = datetime(2020, 1, 1)
        db.commit()

        entry = waitlist.get_entry(entry.id)

        assert entry.status == WaitlistStatus.ACTIVE
        assert entry.response_deadline is None
        assert entry.notification_count == 1

    def test_missed_deadline_at_cap_expires(self, db, business, service):
        waitlist = WaitlistService(db)
        entry = add_entry(db, business, service, 1)
        waitlist.notify_entry(entry.id)
        entry.notification_count = WAITLIST_MAX_NOTIFICATIONS
        entry.response_deadline = datetime(2020, 1, 1)
        db.commit()

        assert waitlist.get_entry(entry.id).status == WaitlistStatus.EXPIRED

    def test_cap_override(self, db, business, service):
        waitlist = WaitlistService(db, response_window_hours=2, max_notifications=1)
        entry = add_entry(db, business, service, 1)
        waitlist.notify_entry(entry.id)
        assert entry.response_deadline - entry.last_notified_at == timedelta(hours=2)
        entry.response_deadline = datetime(2020, 1, 1)
        db.commit()

        assert waitlist.get_entry(entry.id).status == WaitlistStatus.EXPIRED

    def test_sweep(self, db, business, service):
        waitlist = WaitlistService(db)
        entry = add_entry(db, business, service, 1)
        waitlist.notify_entry(entry.id)
        entry.response_deadline = datetime(2020, 1, 1)
        db.commit()

        assert waitlist.expire_overdue() == 1
        db.refresh(entry)
        assert entry.status == WaitlistStatus.ACTIVE


class TestEntries:
    def test_duplicate_open_entry(self, db, business, service):
        add_entry(db, business, service, 1)

        with pytest.raises(ConflictError):
            add_entry(db, business, service, 1)

    def test_rejoin_after_cancel(self, db, business, service):
        waitlist = WaitlistService(db)
        entry = add_entry(db, business, service, 1)
        waitlist.cancel_entry(entry.id)

        again = add_entry(db, business, service, 1)

        assert again.id != entry.id
        assert again.status == WaitlistStatus.ACTIVE

    def test_list_orders_by_priority(self, db, business, service):
        low = add_entry(db, business, service, 1, WaitlistPriority.LOW)
        vip = add_entry(db, business, service, 2, WaitlistPriority.VIP)

        entries = WaitlistService(db).list_entries(business.id, service_id=service.id)

        assert [e.id for e in entries] == [vip.id, low.id]


class TestConversion:
    def test_booking_converts_notified_entry(self, db, business, service):
        waitlist = WaitlistService(db)
        entry = add_entry(db, business, service, 5)
        waitlist.notify_entry(entry.id, at(MONDAY, "10:00"), at(MONDAY, "11:00"))

        booking = BookingService(db).create_booking(
            business.id, at(MONDAY, "10:00"), service_id=service.id, customer_id=5, waitlist_entry_id=entry.id
        )

        db.refresh(entry)
        assert entry.status == WaitlistStatus.CONVERTED
        assert entry.converted_booking_id == booking.id

    def test_other_customer_cannot_convert(self, db, business, service):
        waitlist = WaitlistService(db)
        entry = add_entry(db, business, service, 5)
        waitlist.notify_entry(entry.id)

        with pytest.raises(ForbiddenError):
            BookingService(db).create_booking(
                business.id, at(MONDAY, "10:00"), service_id=service.id, customer_id=6, waitlist_entry_id=entry.id
            )

        assert db.query(models.Booking).count() == 0

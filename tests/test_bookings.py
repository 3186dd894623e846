"""Tests for the booking lifecycle"""

import logging
from datetime import timedelta

import pytest

from booking_engine import models
from booking_engine.domain.bookings.conflict import ConflictDetector
from booking_engine.domain.bookings.service import BookingService
from booking_engine.domain.policies.service import PolicyService
from booking_engine.exceptions import (
    SLOT_UNAVAILABLE,
    BadRequestError,
    ConflictError,
    InvalidTransitionError,
)
from booking_engine.states import BookingStatus, IdempotencyStatus

from .conftest import MONDAY, add_service, at


class TestCreateBooking:
    def test_free_service_is_confirmed(self, db, business, service, resource):
        booking = BookingService(db).create_booking(
            business.id, at(MONDAY, "10:00"), service_id=service.id, customer_id=7
        )

        assert booking.status == BookingStatus.CONFIRMED
        assert booking.resource_id == resource.id
        assert booking.end_at == at(MONDAY, "11:00").replace(tzinfo=None)
        outbox = db.query(models.NotificationOutbox).all()
        assert [o.kind for o in outbox] == ["booking_confirmed"]

    def test_priced_service_awaits_payment(self, db, business, resource):
        service = add_service(db, business, resources=[resource], price=5000)

        booking = BookingService(db).create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        assert booking.status == BookingStatus.PENDING_PAYMENT
        assert booking.price_cents == 5000
        assert db.query(models.NotificationOutbox).count() == 0

    def test_history_row_written(self, db, business, service):
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        history = bookings.get_history(booking.id)

        assert len(history) == 1
        assert history[0].field_changed == "status"
        assert history[0].new_value == "confirmed"

    def test_past_start_rejected(self, db, business, service):
        with pytest.raises(BadRequestError):
            BookingService(db).create_booking(business.id, at(MONDAY.replace(year=2020), "10:00"), service_id=service.id)

    def test_double_booking_is_a_conflict(self, db, business, service):
        bookings = BookingService(db)
        bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        with pytest.raises(ConflictError) as exc:
            bookings.create_booking(business.id, at(MONDAY, "10:30"), service_id=service.id)

        assert exc.value.code == SLOT_UNAVAILABLE
        assert db.query(models.Booking).count() == 1

    def test_missing_policy_is_logged(self, db, business, service, caplog):
        with caplog.at_level(logging.WARNING, logger="booking_engine.domain.bookings.service"):
            booking = BookingService(db).create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        assert booking.policy_snapshot is None
        assert "No cancellation policy" in caplog.text

    def test_default_policy_is_snapshotted_quietly(self, db, business, service, caplog):
        policy = PolicyService(db).create_policy(business.id, "Standard", 24, 50, is_default=True)

        with caplog.at_level(logging.WARNING, logger="booking_engine.domain.bookings.service"):
            booking = BookingService(db).create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        assert booking.policy_snapshot["id"] == policy.id
        assert "No cancellation policy" not in caplog.text

    def test_outside_hours_is_bad_request(self, db, business, service):
        with pytest.raises(BadRequestError):
            BookingService(db).create_booking(business.id, at(MONDAY, "17:30"), service_id=service.id)


class TestConflictDetector:
    def test_commit_time_recheck_rejects_overlap(self, db, business, service, resource):
        BookingService(db).create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        with pytest.raises(ConflictError) as exc:
            ConflictDetector(db).verify([resource.id], at(MONDAY, "10:30"), at(MONDAY, "11:30"))

        assert exc.value.code == SLOT_UNAVAILABLE

    def test_cancelled_bookings_do_not_conflict(self, db, business, service, resource):
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)
        bookings.cancel_booking(booking.id)

        ConflictDetector(db).verify([resource.id], at(MONDAY, "10:00"), at(MONDAY, "11:00"))

    def test_booking_excluded_from_its_own_check(self, db, business, service, resource):
        booking = BookingService(db).create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        ConflictDetector(db).verify(
            [resource.id], at(MONDAY, "10:30"), at(MONDAY, "11:30"), exclude_booking_id=booking.id
        )


class TestUpdateBooking:
    def test_reschedule(self, db, business, service):
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        bookings.update_booking(booking.id, start_at=at(MONDAY, "10:30"), reason="customer asked")

        assert booking.start_at == at(MONDAY, "10:30").replace(tzinfo=None)
        assert booking.end_at == at(MONDAY, "11:30").replace(tzinfo=None)
        fields = [h.field_changed for h in bookings.get_history(booking.id)]
        assert "start_at" in fields and "end_at" in fields

    def test_reschedule_into_other_booking(self, db, business, service):
        bookings = BookingService(db)
        bookings.create_booking(business.id, at(MONDAY, "12:00"), service_id=service.id)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        with pytest.raises(ConflictError):
            bookings.update_booking(booking.id, start_at=at(MONDAY, "11:30"))

    def test_metadata_is_merged(self, db, business, service):
        bookings = BookingService(db)
        booking = bookings.create_booking(
            business.id, at(MONDAY, "10:00"), service_id=service.id, metadata={"source": "web"}
        )

        bookings.update_booking(booking.id, metadata={"note": "window seat"})

        assert booking.extra_data == {"source": "web", "note": "window seat"}

    def test_invalid_status_transition(self, db, business, service):
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        with pytest.raises(InvalidTransitionError):
            bookings.update_booking(booking.id, status=BookingStatus.PENDING_PAYMENT)

    def test_payment_confirms_booking(self, db, business, resource):
        service = add_service(db, business, resources=[resource], price=5000)
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        bookings.update_booking(booking.id, status=BookingStatus.CONFIRMED)

        assert booking.status == BookingStatus.CONFIRMED


class TestCancelBooking:
    def test_penalty_inside_policy_window(self, db, business, resource):
        PolicyService(db).create_policy(business.id, "Standard", 24, 50, is_default=True)
        service = add_service(db, business, resources=[resource], price=10000)
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        result = bookings.cancel_booking(booking.id, "sick", now=at(MONDAY, "08:00"))

        assert result["penalty_cents"] == 5000
        assert result["refund_cents"] == 5000
        assert booking.status == BookingStatus.CANCELLED
        assert booking.penalty_cents == 5000

    def test_free_cancellation_ahead_of_window(self, db, business, resource):
        PolicyService(db).create_policy(business.id, "Standard", 24, 50, is_default=True)
        service = add_service(db, business, resources=[resource], price=10000)
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        result = bookings.cancel_booking(booking.id, now=at(MONDAY, "10:00") - timedelta(days=2))

        assert result["penalty_cents"] == 0
        assert result["refund_cents"] == 10000

    def test_policy_terms_locked_at_creation(self, db, business, resource):
        policies = PolicyService(db)
        policy = policies.create_policy(business.id, "Standard", 24, 50, is_default=True)
        service = add_service(db, business, resources=[resource], price=10000)
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)
        policies.update_policy(policy.id, penalty_percent=100)

        result = bookings.cancel_booking(booking.id, now=at(MONDAY, "09:00"))

        assert result["penalty_cents"] == 5000

    def test_cancelled_booking_cannot_be_cancelled_again(self, db, business, service):
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)
        bookings.cancel_booking(booking.id)

        with pytest.raises(InvalidTransitionError):
            bookings.cancel_booking(booking.id)

    def test_no_show_before_start_rejected(self, db, business, service):
        bookings = BookingService(db)
        booking = bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)

        with pytest.raises(BadRequestError):
            bookings.mark_no_show(booking.id)


class TestIdempotentCreate:
    def test_same_key_same_payload_returns_same_booking(self, db, business, service):
        bookings = BookingService(db)
        request = dict(business_id=business.id, start_at=at(MONDAY, "10:00"), service_id=service.id, customer_id=3)

        first, _ = bookings.create_booking_idempotent("key-1", **request)
        second, outcome = bookings.create_booking_idempotent("key-1", **request)

        assert second.id == first.id
        assert outcome.replayed
        assert db.query(models.Booking).count() == 1

    def test_same_key_different_payload_conflicts(self, db, business, service):
        bookings = BookingService(db)
        bookings.create_booking_idempotent(
            "key-2", business_id=business.id, start_at=at(MONDAY, "10:00"), service_id=service.id
        )

        with pytest.raises(ConflictError) as exc:
            bookings.create_booking_idempotent(
                "key-2", business_id=business.id, start_at=at(MONDAY, "14:00"), service_id=service.id
            )

        assert exc.value.code == "idempotency_key_reused"

    def test_failed_attempt_can_be_retried(self, db, business, service):
        bookings = BookingService(db)
        bookings.create_booking(business.id, at(MONDAY, "10:00"), service_id=service.id)
        request = dict(business_id=business.id, start_at=at(MONDAY, "10:00"), service_id=service.id)

        with pytest.raises(ConflictError):
            bookings.create_booking_idempotent("key-3", **request)
        record = db.query(models.IdempotencyKey).filter_by(key="key-3").one()
        assert record.status == IdempotencyStatus.FAILED

        with pytest.raises(ConflictError) as exc:
            bookings.create_booking_idempotent("key-3", **request)
        assert exc.value.code == SLOT_UNAVAILABLE

    def test_pending_key_returns_pending_outcome(self, db, business, service):
        bookings = BookingService(db)
        request = dict(business_id=business.id, start_at=at(MONDAY, "10:00"), service_id=service.id)
        first, _ = bookings.create_booking_idempotent("key-4", **request)
        record = db.query(models.IdempotencyKey).filter_by(key="key-4").one()
        record.status = IdempotencyStatus.PENDING
        db.commit()

        booking, outcome = bookings.create_booking_idempotent("key-4", **request)

        assert booking is None
        assert outcome.pending

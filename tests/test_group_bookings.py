"""Tests for group bookings"""

import pytest

from booking_engine import models
from booking_engine.domain.group_bookings.service import GroupBookingService, allocate_shares
from booking_engine.exceptions import BadRequestError, ConflictError, ForbiddenError
from booking_engine.states import (
    BookingStatus,
    GroupBookingStatus,
    ParticipantPaymentStatus,
    PaymentSplitType,
)

from .conftest import MONDAY, add_resource, add_service, at


@pytest.fixture
def room(db, business):
    return add_resource(db, business, name="Studio A", type="room", capacity=10)


@pytest.fixture
def class_service(db, business, room):
    return add_service(db, business, resources=[room], price=10000)


def create_group(db, business, room, class_service, split=PaymentSplitType.SPLIT_EQUAL, min_p=2, max_p=3, **kwargs):
    return GroupBookingService(db).create_group(
        business.id,
        1,
        at(MONDAY, "10:00"),
        min_p,
        max_p,
        service_id=class_service.id,
        resource_id=room.id,
        payment_split_type=split,
        **kwargs,
    )


def owed(db, group):
    return [p.amount_owed_cents for p in GroupBookingService(db).get_participants(group.id)]


class TestAllocateShares:
    def test_equal_split_remainder_to_organizer(self):
        assert allocate_shares(10000, PaymentSplitType.SPLIT_EQUAL, [1, 2, 3]) == {1: 3334, 2: 3333, 3: 3333}

    def test_organizer_pays(self):
        assert allocate_shares(500, PaymentSplitType.ORGANIZER_PAYS, [1, 2]) == {1: 500, 2: 0}

    def test_individual_must_add_up(self):
        with pytest.raises(BadRequestError) as exc:
            allocate_shares(1000, PaymentSplitType.INDIVIDUAL, [1, 2], {1: 600, 2: 300})

        assert exc.value.code == "split_mismatch"

    def test_individual_amounts(self):
        assert allocate_shares(1000, PaymentSplitType.INDIVIDUAL, [1, 2], {1: 600, 2: 400}) == {1: 600, 2: 400}


class TestCreateGroup:
    def test_organizer_is_first_participant(self, db, business, room, class_service):
        group = create_group(db, business, room, class_service)

        participants = GroupBookingService(db).get_participants(group.id)
        assert [(p.customer_id, p.is_organizer) for p in participants] == [(1, True)]
        assert group.current_participants == 1
        assert group.total_amount_cents == 10000
        assert group.status == GroupBookingStatus.PENDING

    def test_slot_booking_is_pending(self, db, business, room, class_service):
        group = create_group(db, business, room, class_service)

        booking = db.get(models.Booking, group.booking_id)
        assert booking.status == BookingStatus.PENDING
        assert booking.group_booking_id == group.id

    def test_max_above_capacity(self, db, business, room, class_service):
        with pytest.raises(BadRequestError):
            create_group(db, business, room, class_service, max_p=11)

    def test_invalid_bounds(self, db, business, room, class_service):
        with pytest.raises(BadRequestError):
            create_group(db, business, room, class_service, min_p=4, max_p=3)


class TestMembership:
    def test_join_reallocates_equal_split(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service)

        groups.join(group.id, 2)
        groups.join(group.id, 3)

        assert owed(db, group) == [3334, 3333, 3333]
        assert group.current_participants == 3

    def test_full_group(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service, max_p=2)
        groups.join(group.id, 2)

        with pytest.raises(ConflictError) as exc:
            groups.join(group.id, 3)

        assert exc.value.code == "group_full"

    def test_join_twice(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service)
        groups.join(group.id, 2)

        with pytest.raises(ConflictError):
            groups.join(group.id, 2)

    def test_individual_join_needs_amount(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service, split=PaymentSplitType.INDIVIDUAL)

        with pytest.raises(BadRequestError):
            groups.join(group.id, 2)

    def test_individual_organizer_covers_rest(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service, split=PaymentSplitType.INDIVIDUAL)

        groups.join(group.id, 2, amount_cents=4000)

        assert owed(db, group) == [6000, 4000]

    def test_organizer_cannot_leave(self, db, business, room, class_service):
        group = create_group(db, business, room, class_service)

        with pytest.raises(ForbiddenError):
            GroupBookingService(db).leave(group.id, 1)

    def test_leave_reallocates(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service)
        groups.join(group.id, 2)
        groups.join(group.id, 3)

        groups.leave(group.id, 3)

        assert owed(db, group) == [5000, 5000]
        assert group.current_participants == 2


class TestLifecycle:
    def test_confirm_requires_minimum(self, db, business, room, class_service):
        group = create_group(db, business, room, class_service)

        with pytest.raises(BadRequestError):
            GroupBookingService(db).confirm(group.id)

    def test_confirm_confirms_slot_booking(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service)
        groups.join(group.id, 2)

        groups.confirm(group.id)

        assert group.status == GroupBookingStatus.CONFIRMED
        assert db.get(models.Booking, group.booking_id).status == BookingStatus.CONFIRMED

    def test_all_paid_confirms_group(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service)
        groups.join(group.id, 2)

        groups.record_payment(group.id, 1, "pay_1")
        assert group.status == GroupBookingStatus.PENDING
        groups.record_payment(group.id, 2, "pay_2")

        db.refresh(group)
        assert group.status == GroupBookingStatus.CONFIRMED

    def test_paid_participant_cannot_leave(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service)
        groups.join(group.id, 2)
        groups.record_payment(group.id, 2)

        with pytest.raises(BadRequestError):
            groups.leave(group.id, 2)

    def test_check_in_requires_confirmed_group(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service)

        with pytest.raises(BadRequestError):
            groups.check_in(group.id, 1)

        groups.join(group.id, 2)
        groups.confirm(group.id)
        assert groups.check_in(group.id, 2).checked_in

    def test_cancel_refunds_paid_participants(self, db, business, room, class_service):
        groups = GroupBookingService(db)
        group = create_group(db, business, room, class_service)
        groups.join(group.id, 2)
        groups.record_payment(group.id, 2)

        groups.cancel(group.id)

        assert group.status == GroupBookingStatus.CANCELLED
        statuses = {p.customer_id: p.payment_status for p in groups.get_participants(group.id)}
        assert statuses == {1: ParticipantPaymentStatus.PENDING, 2: ParticipantPaymentStatus.REFUNDED}
        assert db.get(models.Booking, group.booking_id).status == BookingStatus.CANCELLED

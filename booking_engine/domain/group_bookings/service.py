"""Group booking service - Participant capacity, payment shares and group lifecycle"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import transaction
from ...exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from ...models import GroupBooking, GroupBookingParticipant
from ...services.notification_service import queue_group_booking_event
from ...shared.timeutils import to_storage, utcnow
from ...states import (
    BookingStatus,
    GroupBookingStatus,
    ParticipantPaymentStatus,
    PaymentSplitType,
    ensure_transition,
)
from ..bookings.service import BookingService
from ..calendar.repository import CalendarRepository
from .repository import GroupBookingRepository

logger = logging.getLogger(__name__)


def allocate_shares(
    total_cents: int,
    split_type: PaymentSplitType,
    customer_ids: list[int],
    individual_amounts: Optional[dict[int, int]] = None,
) -> dict[int, int]:
    """
    Amount owed per participant. customer_ids[0] is the organizer.

    organizer_pays: the organizer owes the total
    split_equal: total // n each, the remainder goes to the organizer
    individual: caller amounts, which must add up to the total exactly
    """
    if not customer_ids:
        raise BadRequestError("A group needs at least one participant")
    if total_cents < 0:
        raise BadRequestError("Total amount must not be negative")

    split_type = PaymentSplitType(split_type)
    organizer = customer_ids[0]

    if split_type == PaymentSplitType.ORGANIZER_PAYS:
        return {cid: (total_cents if cid == organizer else 0) for cid in customer_ids}

    if split_type == PaymentSplitType.SPLIT_EQUAL:
        share, remainder = divmod(total_cents, len(customer_ids))
        shares = {cid: share for cid in customer_ids}
        shares[organizer] += remainder
        return shares

    amounts = individual_amounts or {}
    missing = [cid for cid in customer_ids if cid not in amounts]
    if missing:
        raise BadRequestError(f"Missing amounts for participants: {missing}")
    if any(amounts[cid] < 0 for cid in customer_ids):
        raise BadRequestError("Participant amounts must not be negative")
    allotted = sum(amounts[cid] for cid in customer_ids)
    if allotted != total_cents:
        raise BadRequestError(
            f"Participant amounts add up to {allotted}, expected {total_cents}",
            code="split_mismatch",
        )
    return {cid: amounts[cid] for cid in customer_ids}


class GroupBookingService:
    """Service layer for group bookings"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = GroupBookingRepository()
        self.bookings = BookingService(db)

    # ========================================================================
    # READS
    # ========================================================================

    def get_group(self, group_id: int) -> GroupBooking:
        group = self.repo.get_by_id(self.db, group_id)
        if not group:
            raise NotFoundError("Group booking not found")
        return group

    def get_participants(self, group_id: int) -> list[GroupBookingParticipant]:
        return self.repo.get_participants(self.db, group_id)

    def _require_participant(self, group_id: int, customer_id: int) -> GroupBookingParticipant:
        participant = self.repo.get_participant(self.db, group_id, customer_id)
        if not participant:
            raise NotFoundError("Participant not found in this group")
        return participant

    def _reallocate(self, group: GroupBooking, individual_amounts: Optional[dict[int, int]] = None) -> None:
        """Recompute every participant's share after a membership change"""
        participants = self.repo.get_participants(self.db, group.id)
        customer_ids = [p.customer_id for p in participants]

        if PaymentSplitType(group.payment_split_type) == PaymentSplitType.INDIVIDUAL:
            amounts = {p.customer_id: p.amount_owed_cents for p in participants}
            amounts.update(individual_amounts or {})
            # The organizer covers whatever the other participants do not
            others = sum(amounts[cid] for cid in customer_ids[1:])
            if individual_amounts is None or customer_ids[0] not in individual_amounts:
                amounts[customer_ids[0]] = group.total_amount_cents - others
            if amounts[customer_ids[0]] < 0:
                raise BadRequestError(
                    "Participant amounts exceed the group total", code="split_mismatch"
                )
            individual_amounts = amounts

        shares = allocate_shares(
            group.total_amount_cents, group.payment_split_type, customer_ids, individual_amounts
        )
        for participant in participants:
            participant.amount_owed_cents = shares[participant.customer_id]
        group.current_participants = len(participants)
        self.db.flush()

    # ========================================================================
    # CREATE
    # ========================================================================

    def create_group(
        self,
        business_id: int,
        organizer_customer_id: int,
        start_at: datetime,
        min_participants: int,
        max_participants: int,
        end_at: Optional[datetime] = None,
        service_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        payment_split_type: PaymentSplitType = PaymentSplitType.ORGANIZER_PAYS,
        total_amount_cents: Optional[int] = None,
        group_name: Optional[str] = None,
        individual_amounts: Optional[dict[int, int]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> GroupBooking:
        """
        Create a group with the organizer as its first participant.

        The slot is held by a pending booking created through the regular booking
        path, so the same availability and conflict checks apply.
        """
        if min_participants < 1 or max_participants < min_participants:
            raise BadRequestError("Participant bounds must satisfy 1 <= min <= max")
        if resource_id is not None:
            resource = CalendarRepository.get_resource(self.db, resource_id)
            if not resource:
                raise NotFoundError("Resource not found or inactive")
            if max_participants > resource.capacity:
                raise BadRequestError(
                    f"Resource capacity is {resource.capacity}, below max participants {max_participants}"
                )

        try:
            with transaction(self.db):
                group = self.repo.create(
                    self.db,
                    business_id=business_id,
                    service_id=service_id,
                    organizer_customer_id=organizer_customer_id,
                    group_name=group_name,
                    min_participants=min_participants,
                    max_participants=max_participants,
                    current_participants=1,
                    start_at=to_storage(start_at),
                    end_at=to_storage(end_at or start_at),
                    total_amount_cents=total_amount_cents or 0,
                    payment_split_type=payment_split_type,
                    status=GroupBookingStatus.PENDING,
                    extra_data=metadata or {},
                )
                booking = self.bookings.create_booking(
                    business_id,
                    start_at,
                    end_at,
                    service_id=service_id,
                    resource_id=resource_id,
                    customer_id=organizer_customer_id,
                    group_booking_id=group.id,
                    initial_status=BookingStatus.PENDING,
                )
                group.booking_id = booking.id
                group.start_at = booking.start_at
                group.end_at = booking.end_at
                if total_amount_cents is None:
                    group.total_amount_cents = booking.price_cents

                self.repo.add_participant(self.db, group.id, organizer_customer_id, is_organizer=True)
                self._reallocate(group, individual_amounts)
        except IntegrityError:
            raise ConflictError("Group booking could not be stored")

        logger.info(
            f"✅ Group booking {group.id} created by customer {organizer_customer_id} "
            f"({min_participants}-{max_participants} participants, {PaymentSplitType(payment_split_type).value})"
        )
        return group

    # ========================================================================
    # MEMBERSHIP
    # ========================================================================

    def join(self, group_id: int, customer_id: int, amount_cents: Optional[int] = None) -> GroupBooking:
        group = self.get_group(group_id)
        if GroupBookingStatus(group.status) not in (GroupBookingStatus.PENDING, GroupBookingStatus.CONFIRMED):
            raise BadRequestError(f"Cannot join a {GroupBookingStatus(group.status).value} group")
        is_individual = PaymentSplitType(group.payment_split_type) == PaymentSplitType.INDIVIDUAL
        if is_individual and amount_cents is None:
            raise BadRequestError("Individual split needs an amount for the new participant")

        try:
            with transaction(self.db):
                group = self.repo.get_by_id(self.db, group_id, for_update=True)
                if self.repo.get_participant(self.db, group_id, customer_id):
                    raise ConflictError("Customer is already in this group")
                if group.current_participants + 1 > group.max_participants:
                    raise ConflictError("Group is full", code="group_full")

                self.repo.add_participant(self.db, group_id, customer_id)
                self._reallocate(group, {customer_id: amount_cents} if is_individual else None)
        except IntegrityError:
            raise ConflictError("Customer is already in this group")

        logger.info(
            f"Customer {customer_id} joined group {group_id} "
            f"({group.current_participants}/{group.max_participants})"
        )
        return group

    def leave(self, group_id: int, customer_id: int) -> GroupBooking:
        group = self.get_group(group_id)
        participant = self._require_participant(group_id, customer_id)
        if participant.is_organizer:
            raise ForbiddenError("The organizer cannot leave the group")
        if ParticipantPaymentStatus(participant.payment_status) == ParticipantPaymentStatus.PAID:
            raise BadRequestError("A participant who has paid cannot leave")
        status = GroupBookingStatus(group.status)
        if status not in (GroupBookingStatus.PENDING, GroupBookingStatus.CONFIRMED):
            raise BadRequestError(f"Cannot leave a {status.value} group")
        if status == GroupBookingStatus.CONFIRMED and group.current_participants - 1 < group.min_participants:
            raise BadRequestError("Leaving would take a confirmed group below its minimum size")

        with transaction(self.db):
            self.repo.remove_participant(self.db, participant)
            self._reallocate(group)

        logger.info(f"Customer {customer_id} left group {group_id}")
        return group

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def confirm(self, group_id: int) -> GroupBooking:
        group = self.get_group(group_id)
        if group.current_participants < group.min_participants:
            raise BadRequestError(
                f"Group needs at least {group.min_participants} participants, has {group.current_participants}"
            )
        with transaction(self.db):
            self._confirm(group)
        return group

    def _confirm(self, group: GroupBooking) -> None:
        group.status = ensure_transition(group.status, GroupBookingStatus.CONFIRMED, "group booking")
        if group.booking_id:
            self.bookings.update_booking(group.booking_id, status=BookingStatus.CONFIRMED, reason="group confirmed")
        participants = self.repo.get_participants(self.db, group.id)
        queue_group_booking_event(
            self.db, group, "group_booking_confirmed", [p.customer_id for p in participants]
        )
        self.db.flush()
        logger.info(f"✅ Group booking {group.id} confirmed with {group.current_participants} participants")

    def record_payment(
        self, group_id: int, customer_id: int, payment_reference: Optional[str] = None
    ) -> GroupBookingParticipant:
        """Mark a participant paid; a pending group whose participants have all paid is confirmed"""
        group = self.get_group(group_id)
        participant = self._require_participant(group_id, customer_id)
        if GroupBookingStatus(group.status) == GroupBookingStatus.CANCELLED:
            raise BadRequestError("Cannot pay for a cancelled group")

        with transaction(self.db):
            participant.payment_status = ensure_transition(
                participant.payment_status, ParticipantPaymentStatus.PAID, "payment"
            )
            participant.payment_reference = payment_reference
            participant.paid_at = to_storage(utcnow())
            self.db.flush()

            participants = self.repo.get_participants(self.db, group_id)
            all_paid = all(
                ParticipantPaymentStatus(p.payment_status) == ParticipantPaymentStatus.PAID
                or p.amount_owed_cents == 0
                for p in participants
            )
            if (
                all_paid
                and GroupBookingStatus(group.status) == GroupBookingStatus.PENDING
                and group.current_participants >= group.min_participants
            ):
                self._confirm(group)

        logger.info(f"Payment recorded for customer {customer_id} in group {group_id}")
        return participant

    def check_in(self, group_id: int, customer_id: int) -> GroupBookingParticipant:
        group = self.get_group(group_id)
        if GroupBookingStatus(group.status) != GroupBookingStatus.CONFIRMED:
            raise BadRequestError("Check-in is only possible for a confirmed group")
        participant = self._require_participant(group_id, customer_id)
        if participant.checked_in:
            return participant

        with transaction(self.db):
            participant.checked_in = True
            participant.checked_in_at = to_storage(utcnow())
            self.db.flush()
        logger.info(f"Customer {customer_id} checked in to group {group_id}")
        return participant

    def cancel(self, group_id: int, reason: Optional[str] = None) -> GroupBooking:
        """Cancel the group, release its slot and mark paid participants refunded"""
        group = self.get_group(group_id)
        ensure_transition(group.status, GroupBookingStatus.CANCELLED, "group booking")

        with transaction(self.db):
            group.status = GroupBookingStatus.CANCELLED
            if group.booking_id:
                self.bookings.cancel_booking(group.booking_id, reason or "group cancelled")
            participants = self.repo.get_participants(self.db, group.id)
            for p in participants:
                if ParticipantPaymentStatus(p.payment_status) == ParticipantPaymentStatus.PAID:
                    p.payment_status = ensure_transition(
                        p.payment_status, ParticipantPaymentStatus.REFUNDED, "payment"
                    )
            queue_group_booking_event(
                self.db, group, "group_booking_cancelled", [p.customer_id for p in participants]
            )
            self.db.flush()

        logger.info(f"Group booking {group_id} cancelled")
        return group

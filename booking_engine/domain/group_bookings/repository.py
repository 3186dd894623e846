"""Group booking repository - Database operations for groups and participants"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import GroupBooking, GroupBookingParticipant


class GroupBookingRepository:
    """Repository for group booking database operations"""

    @staticmethod
    def get_by_id(db: Session, group_id: int, for_update: bool = False) -> Optional[GroupBooking]:
        query = db.query(GroupBooking).filter(GroupBooking.id == group_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_participants(db: Session, group_id: int) -> list[GroupBookingParticipant]:
        """Participants with the organizer first, then in join order"""
        return (
            db.query(GroupBookingParticipant)
            .filter(GroupBookingParticipant.group_booking_id == group_id)
            .order_by(GroupBookingParticipant.is_organizer.desc(), GroupBookingParticipant.id)
            .all()
        )

    @staticmethod
    def get_participant(db: Session, group_id: int, customer_id: int) -> Optional[GroupBookingParticipant]:
        return (
            db.query(GroupBookingParticipant)
            .filter(
                GroupBookingParticipant.group_booking_id == group_id,
                GroupBookingParticipant.customer_id == customer_id,
            )
            .first()
        )

    @staticmethod
    def create(db: Session, **fields) -> GroupBooking:
        group = GroupBooking(**fields)
        db.add(group)
        db.flush()
        return group

    @staticmethod
    def add_participant(db: Session, group_id: int, customer_id: int, is_organizer: bool = False):
        participant = GroupBookingParticipant(
            group_booking_id=group_id, customer_id=customer_id, is_organizer=is_organizer
        )
        db.add(participant)
        db.flush()
        return participant

    @staticmethod
    def remove_participant(db: Session, participant: GroupBookingParticipant) -> None:
        db.delete(participant)
        db.flush()

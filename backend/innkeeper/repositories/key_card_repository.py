# backend/innkeeper/repositories/key_card_repository.py
"""
Key-card repository.

Allocation is a find-and-claim: pick an inactive candidate, then flip it to
active with an UPDATE that only matches while the card is still inactive.
A zero rowcount means a concurrent check-in took that card first.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import and_, exists, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.key_card import KeyCard, KeyCardStatus, KeyCardStatusChange
from ..models.stay import Stay, StayStatus
from .base_repository import BaseRepository


class KeyCardRepository(BaseRepository[KeyCard]):
    def __init__(self, db: Session):
        super().__init__(db, KeyCard)
        self.logger = logging.getLogger(__name__)

    def get_by_number(self, card_number: str) -> Optional[KeyCard]:
        return self.find_one_by(card_number=card_number)

    def list_by_status(self, status: Optional[KeyCardStatus] = None) -> List[KeyCard]:
        try:
            query = self.db.query(KeyCard)
            if status is not None:
                query = query.filter(KeyCard.status == status)
            return query.order_by(KeyCard.card_number.asc()).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing key cards: {str(e)}")
            raise RepositoryException(f"Failed to list key cards: {str(e)}")

    def _next_inactive_candidate(self, skip_ids: List[str]) -> Optional[str]:
        query = self.db.query(KeyCard.id).filter(KeyCard.status == KeyCardStatus.INACTIVE)
        if skip_ids:
            query = query.filter(KeyCard.id.notin_(skip_ids))
        query = query.order_by(KeyCard.card_number.asc())
        if self.dialect_name == "postgresql":
            query = query.with_for_update(skip_locked=True)
        row = query.first()
        return row[0] if row else None

    def claim_inactive(
        self,
        *,
        guest_id: str,
        room_id: str,
        expires_at: datetime,
        activated_at: datetime,
        actor_id: Optional[str],
        max_attempts: int = 5,
    ) -> Optional[KeyCard]:
        """
        Atomically claim one inactive card for ``guest_id``/``room_id``.

        Returns None when the pool has no inactive card left.
        """
        tried: List[str] = []
        try:
            self.db.flush()
            for _ in range(max_attempts):
                card_id = self._next_inactive_candidate(tried)
                if card_id is None:
                    return None

                result = self.db.execute(
                    update(KeyCard)
                    .where(KeyCard.id == card_id, KeyCard.status == KeyCardStatus.INACTIVE)
                    .values(
                        status=KeyCardStatus.ACTIVE,
                        assigned_to=guest_id,
                        assigned_room=room_id,
                        activation_date=activated_at,
                        expiration_date=expires_at,
                        previous_status=KeyCardStatus.INACTIVE,
                        status_changed_by=actor_id,
                        status_changed_at=activated_at,
                        status_change_reason="Issued at check-in",
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    card = self.db.get(KeyCard, card_id)
                    self.db.refresh(card)
                    return card

                self.logger.info("Key card %s claimed concurrently; trying next", card_id)
                tried.append(card_id)
            return None
        except SQLAlchemyError as e:
            self.logger.error(f"Error claiming key card: {str(e)}")
            raise RepositoryException(f"Failed to claim key card: {str(e)}")

    def find_active_for(self, guest_id: str, room_id: str) -> List[KeyCard]:
        try:
            return (
                self.db.query(KeyCard)
                .filter(
                    KeyCard.status == KeyCardStatus.ACTIVE,
                    KeyCard.assigned_to == guest_id,
                    KeyCard.assigned_room == room_id,
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding cards for guest {guest_id}: {str(e)}")
            raise RepositoryException(f"Failed to find assigned key cards: {str(e)}")

    def find_orphaned_active(self, activated_before: datetime) -> List[KeyCard]:
        """Active cards whose guest/room pair has no checked-in stay."""
        try:
            in_house = exists().where(
                and_(
                    Stay.guest_id == KeyCard.assigned_to,
                    Stay.room_id == KeyCard.assigned_room,
                    Stay.status == StayStatus.CHECKED_IN,
                )
            )
            return (
                self.db.query(KeyCard)
                .filter(
                    KeyCard.status == KeyCardStatus.ACTIVE,
                    KeyCard.activation_date < activated_before,
                    ~in_house,
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error scanning for orphaned key cards: {str(e)}")
            raise RepositoryException(f"Failed to scan key cards: {str(e)}")

    def add_status_change(
        self,
        card: KeyCard,
        *,
        previous_status: Optional[str],
        new_status: str,
        changed_by: Optional[str],
        reason: Optional[str],
        changed_at: datetime,
    ) -> KeyCardStatusChange:
        try:
            entry = KeyCardStatusChange(
                card_id=card.id,
                previous_status=previous_status,
                new_status=new_status,
                changed_by=changed_by,
                reason=reason,
                changed_at=changed_at,
            )
            self.db.add(entry)
            self.db.flush()
            return entry
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording key card audit for {card.id}: {str(e)}")
            raise RepositoryException(f"Failed to record key card audit: {str(e)}")

    def get_status_history(self, card_id: str) -> List[KeyCardStatusChange]:
        try:
            return (
                self.db.query(KeyCardStatusChange)
                .filter(KeyCardStatusChange.card_id == card_id)
                .order_by(KeyCardStatusChange.changed_at.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading key card history for {card_id}: {str(e)}")
            raise RepositoryException(f"Failed to load key card history: {str(e)}")

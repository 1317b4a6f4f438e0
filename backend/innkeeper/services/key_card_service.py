# backend/innkeeper/services/key_card_service.py
"""
Key-Card Pool Manager.

Owns the finite set of physical key cards: issues an inactive card to a
guest/room pair, takes it back on return, and records every status change.
Methods flush but do not commit; the calling flow owns the transaction so
that a card claim and the stay that uses it land together.
"""

from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ConflictException,
    NoCardsAvailableException,
    NotFoundException,
    ValidationException,
)
from ..core.metrics import KEY_CARD_ALLOCATIONS_TOTAL
from ..models.key_card import ASSIGNMENT_CLEARING_STATUSES, KeyCard, KeyCardStatus
from ..models.stay import StayStatus
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class KeyCardService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = RepositoryFactory.create_key_card_repository(db)
        self.stay_repository = RepositoryFactory.create_stay_repository(db)

    @BaseService.measure_operation("allocate_key_card")
    def allocate(
        self,
        guest_id: str,
        room_id: str,
        expires_at: datetime,
        actor_id: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> KeyCard:
        """
        Claim one inactive card for the guest/room pair.

        Raises:
            NoCardsAvailableException: the pool has no inactive card
        """
        at = self.resolve_now(now)
        card = self.repository.claim_inactive(
            guest_id=guest_id,
            room_id=room_id,
            expires_at=expires_at,
            activated_at=at,
            actor_id=actor_id,
            max_attempts=settings.key_card_claim_attempts,
        )
        if card is None:
            KEY_CARD_ALLOCATIONS_TOTAL.labels(outcome="exhausted").inc()
            self.logger.warning(
                "Key card pool exhausted",
                extra={"guest_id": guest_id, "room_id": room_id},
            )
            raise NoCardsAvailableException(room_id=room_id)

        self.repository.add_status_change(
            card,
            previous_status=KeyCardStatus.INACTIVE,
            new_status=KeyCardStatus.ACTIVE,
            changed_by=actor_id,
            reason="Issued at check-in",
            changed_at=at,
        )
        KEY_CARD_ALLOCATIONS_TOTAL.labels(outcome="allocated").inc()
        self.logger.info(
            f"Key card {card.card_number} issued",
            extra={"card_id": card.id, "guest_id": guest_id, "room_id": room_id},
        )
        return card

    def release(
        self,
        card: KeyCard,
        actor_id: Optional[str] = None,
        *,
        reason: str = "Returned at check-out",
        now: Optional[datetime] = None,
    ) -> KeyCard:
        """Return a card to the pool; the return time becomes its expiration."""
        at = self.resolve_now(now)
        previous = card.status
        card.status = KeyCardStatus.INACTIVE
        card.assigned_to = None
        card.assigned_room = None
        card.expiration_date = at
        card.previous_status = previous
        card.status_changed_by = actor_id
        card.status_changed_at = at
        card.status_change_reason = reason
        self.repository.flush()
        self.repository.add_status_change(
            card,
            previous_status=previous,
            new_status=KeyCardStatus.INACTIVE,
            changed_by=actor_id,
            reason=reason,
            changed_at=at,
        )
        self.logger.info(f"Key card {card.card_number} returned", extra={"card_id": card.id})
        return card

    def fallback_release(
        self,
        guest_id: str,
        room_id: str,
        actor_id: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[KeyCard]:
        """
        Release any active card still assigned to this guest/room pair.

        Repair path for stays whose card reference is missing or stale.
        """
        cards = self.repository.find_active_for(guest_id, room_id)
        if not cards:
            self.logger.info(
                "No active key card found for guest/room during fallback release",
                extra={"guest_id": guest_id, "room_id": room_id},
            )
            return None

        for card in cards:
            self.release(card, actor_id, reason="Returned at check-out (fallback)", now=now)
        self.logger.warning(
            "Key card released via fallback lookup",
            extra={"guest_id": guest_id, "room_id": room_id, "count": len(cards)},
        )
        return cards[0]

    @BaseService.measure_operation("set_key_card_status")
    def set_status(
        self,
        card_id: str,
        new_status: KeyCardStatus,
        actor_id: str,
        reason: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> KeyCard:
        """
        Audited status change.

        lost/damaged/inactive detach the card from its holder; activation is
        only possible through ``allocate``.
        """
        try:
            new_status = KeyCardStatus(new_status)
        except ValueError:
            raise ValidationException(f"Unknown key card status: {new_status}")
        if new_status == KeyCardStatus.ACTIVE:
            raise ValidationException(
                "Cards are activated by issuing them at check-in",
                code="ACTIVATION_REQUIRES_ALLOCATION",
            )

        card = self.repository.get_by_id(card_id)
        if card is None:
            raise NotFoundException(f"Key card {card_id} not found")

        at = self.resolve_now(now)
        with self.transaction():
            previous = card.status
            card.status = new_status
            if new_status in ASSIGNMENT_CLEARING_STATUSES:
                card.assigned_to = None
                card.assigned_room = None
            card.previous_status = previous
            card.status_changed_by = actor_id
            card.status_changed_at = at
            card.status_change_reason = reason
            self.repository.flush()
            self.repository.add_status_change(
                card,
                previous_status=previous,
                new_status=new_status,
                changed_by=actor_id,
                reason=reason,
                changed_at=at,
            )

        self.log_operation(
            "key_card_status_changed",
            card_id=card.id,
            previous_status=getattr(previous, "value", previous),
            new_status=new_status.value,
            actor_id=actor_id,
        )
        return card

    def create_card(self, card_number: str, card_type: str = "standard") -> KeyCard:
        card_number = (card_number or "").strip()
        if not card_number:
            raise ValidationException("Card number is required")
        if self.repository.get_by_number(card_number) is not None:
            raise ConflictException(
                f"Key card {card_number} already exists", code="DUPLICATE_CARD_NUMBER"
            )
        with self.transaction():
            card = self.repository.create(
                card_number=card_number,
                card_type=card_type,
                status=KeyCardStatus.INACTIVE,
            )
        return card

    def list_cards(self, status: Optional[KeyCardStatus] = None) -> List[KeyCard]:
        return self.repository.list_by_status(status)

    def list_available(self) -> List[KeyCard]:
        return self.repository.list_by_status(KeyCardStatus.INACTIVE)

    def get_card_details(self, card_id: str) -> Dict[str, Any]:
        """Card, its audit history and the in-house stay holding it, if any."""
        card = self.repository.get_by_id(card_id)
        if card is None:
            raise NotFoundException(f"Key card {card_id} not found")

        stay = None
        if card.status == KeyCardStatus.ACTIVE and card.assigned_room:
            candidate = self.stay_repository.get_checked_in_for_room(card.assigned_room)
            if candidate is not None and candidate.status == StayStatus.CHECKED_IN:
                stay = candidate

        return {
            "card": card,
            "history": self.repository.get_status_history(card.id),
            "stay": stay,
        }

    @BaseService.measure_operation("reconcile_orphaned_cards")
    def reconcile_orphaned_cards(self, *, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Release active cards that no checked-in stay accounts for.

        Covers check-ins that claimed a card but never persisted the stay.
        Cards activated within the grace window are left alone.
        """
        at = self.resolve_now(now)
        cutoff = at - timedelta(minutes=settings.orphan_card_grace_minutes)
        released = 0
        errors = 0
        for card in self.repository.find_orphaned_active(cutoff):
            try:
                with self.transaction():
                    self.release(
                        card,
                        actor_id=None,
                        reason="Released by consistency sweep (no checked-in stay)",
                        now=at,
                    )
                released += 1
            except Exception:
                errors += 1
                self.logger.exception(
                    "Failed to release orphaned key card", extra={"card_id": card.id}
                )

        if released or errors:
            self.logger.warning(
                "Orphaned key card sweep finished",
                extra={"released": released, "errors": errors},
            )
        return {"released": released, "errors": errors}

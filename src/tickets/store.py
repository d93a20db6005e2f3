from abc import ABC, abstractmethod
from typing import List, Optional
from datetime import datetime, timezone
from enum import Enum
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from src.exceptions import PersistenceError
from src.models import Ticket as TicketRow
from src.realtime.feed import ChangeFeed, ChangeEvent
from src.time_utils import as_utc, utc_now
from src.tickets.schemas import Ticket, TicketStatus

logger = logging.getLogger(__name__)

class UpdateOutcome(str, Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"

class TicketStore(ABC):
    """Create/read/update access to ticket records"""

    @abstractmethod
    def insert(self, ticket: Ticket) -> Ticket:
        ...

    @abstractmethod
    def find_by_id(self, ticket_id: str) -> Optional[Ticket]:
        ...

    @abstractmethod
    def find_by_scan_code(self, code: str) -> Optional[Ticket]:
        ...

    @abstractmethod
    def update_status_conditional(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        new_status: TicketStatus,
        **extra_fields
    ) -> UpdateOutcome:
        """Move a ticket to ``new_status`` only if it is still in ``expected_status``"""

    @abstractmethod
    def list_for_user(self, user_id: str, active_only: bool = False, now: Optional[datetime] = None) -> List[Ticket]:
        ...

class SQLAlchemyTicketStore(TicketStore):
    """Ticket store backed by the relational database"""

    def __init__(self, db: Session, change_feed: Optional[ChangeFeed] = None):
        self.db = db
        self.change_feed = change_feed

    def insert(self, ticket: Ticket) -> Ticket:
        row = TicketRow(
            id=ticket.id,
            user_id=ticket.user_id,
            type=ticket.type.value,
            line=ticket.line,
            from_station=ticket.from_station,
            to_station=ticket.to_station,
            qr_code=ticket.qr_code,
            valid_until=ticket.valid_until.astimezone(timezone.utc),
            status=ticket.status.value,
            used_at=ticket.used_at,
            created_at=ticket.created_at.astimezone(timezone.utc)
        )

        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Ticket insert rejected for %s: %s", ticket.id, e)
            raise PersistenceError("Failed to save ticket") from e

        stored = self._to_schema(row)
        self._publish("INSERT", stored)
        return stored

    def find_by_id(self, ticket_id: str) -> Optional[Ticket]:
        row = self._query(TicketRow.id == ticket_id)
        return self._to_schema(row) if row else None

    def find_by_scan_code(self, code: str) -> Optional[Ticket]:
        row = self._query(TicketRow.qr_code == code)
        return self._to_schema(row) if row else None

    def update_status_conditional(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        new_status: TicketStatus,
        **extra_fields
    ) -> UpdateOutcome:
        values = {"status": new_status.value}
        for key, value in extra_fields.items():
            if not hasattr(TicketRow, key):
                raise ValueError(f"Unknown ticket field: {key}")
            values[key] = value.astimezone(timezone.utc) if isinstance(value, datetime) else value

        # Single guarded UPDATE: the WHERE on the prior status makes this a compare-and-swap
        statement = (
            update(TicketRow)
            .where(TicketRow.id == ticket_id, TicketRow.status == expected_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = self.db.execute(statement)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Ticket status update failed for %s: %s", ticket_id, e)
            raise PersistenceError("Failed to update ticket") from e

        if result.rowcount != 1:
            logger.info("Status update conflict for ticket %s (expected %s)", ticket_id, expected_status.value)
            return UpdateOutcome.CONFLICT

        # Drop any cached row so later reads see the committed values
        self.db.expire_all()
        updated = self.find_by_id(ticket_id)
        if updated is not None:
            self._publish("UPDATE", updated, old={"id": ticket_id, "status": expected_status.value})
        return UpdateOutcome.SUCCESS

    def list_for_user(self, user_id: str, active_only: bool = False, now: Optional[datetime] = None) -> List[Ticket]:
        try:
            query = self.db.query(TicketRow).filter(TicketRow.user_id == user_id)
            if active_only:
                now = now or utc_now()
                query = query.filter(
                    TicketRow.status == TicketStatus.ACTIVE.value,
                    TicketRow.valid_until > now.astimezone(timezone.utc)
                )
            rows = query.order_by(TicketRow.created_at.desc()).all()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load tickets") from e
        return [self._to_schema(row) for row in rows]

    def _query(self, criterion) -> Optional[TicketRow]:
        try:
            return self.db.query(TicketRow).filter(criterion).first()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load ticket") from e

    def _publish(self, event: str, ticket: Ticket, old: Optional[dict] = None):
        if self.change_feed is None:
            return
        self.change_feed.publish(ChangeEvent(
            table="tickets",
            event=event,
            new=ticket.model_dump(mode="json"),
            old=old
        ))

    @staticmethod
    def _to_schema(row: TicketRow) -> Ticket:
        return Ticket(
            id=row.id,
            user_id=row.user_id,
            type=row.type,
            line=row.line,
            from_station=row.from_station,
            to_station=row.to_station,
            qr_code=row.qr_code,
            valid_until=as_utc(row.valid_until),
            status=row.status,
            used_at=as_utc(row.used_at),
            created_at=as_utc(row.created_at)
        )

from typing import Callable, List, Optional
from datetime import datetime, tzinfo
from io import BytesIO
import calendar
import json
import logging
import uuid

import qrcode
from qrcode import constants
from PIL import Image
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from src.auth.schemas import CallerContext
from src.exceptions import AuthenticationRequired, PersistenceError
from src.tickets.schemas import (
    FARE_CATALOGUE, FareCategory, ScanCodePayload, Ticket, TicketStatus,
    TicketView, ValidationResult
)
from src.tickets.store import TicketStore, UpdateOutcome
from src.time_utils import service_timezone, utc_now

logger = logging.getLogger(__name__)

MSG_VALIDATED = "Ticket validated successfully"
MSG_ALREADY_USED = "Ticket already used"
MSG_EXPIRED = "Ticket expired"
MSG_INVALID_TICKET = "Invalid ticket"
MSG_INVALID_QR = "Invalid QR code"

def add_calendar_month(moment: datetime) -> datetime:
    """Same wall-clock time one calendar month later; the day is clamped to the target month's length"""
    year = moment.year + moment.month // 12
    month = moment.month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)

def compute_valid_until(issued_at: datetime, category: FareCategory, tz: tzinfo) -> datetime:
    """Validity deadline for a ticket issued at ``issued_at``.

    single, return and daily tickets run to the last millisecond of the
    issuance day in ``tz``; monthly passes run one calendar month.
    """
    local = issued_at.astimezone(tz)
    if category == FareCategory.MONTHLY:
        return add_calendar_month(local)
    return local.replace(hour=23, minute=59, second=59, microsecond=999000)

def build_scan_code(ticket_id: str, user_id: str, issued_at: datetime) -> str:
    payload = {
        "ticketId": ticket_id,
        "userId": user_id,
        "timestamp": int(issued_at.timestamp() * 1000),
    }
    return json.dumps(payload, separators=(",", ":"))

def parse_scan_code(text: str) -> Optional[ScanCodePayload]:
    """Decode scanned text into a payload; None for anything that is not a JSON object"""
    try:
        data = json.loads(text)
    except (ValueError, TypeError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None
    try:
        return ScanCodePayload.model_validate(data)
    except ValidationError:
        return None

def _looks_like_ticket_id(text: str) -> bool:
    try:
        uuid.UUID(text)
    except ValueError:
        return False
    return True

def effective_status(ticket: Ticket, now: datetime) -> TicketStatus:
    """Status as seen at ``now``: used wins, then expiry (stored or by deadline)"""
    if ticket.status == TicketStatus.USED:
        return TicketStatus.USED
    if ticket.status == TicketStatus.EXPIRED or now > ticket.valid_until:
        return TicketStatus.EXPIRED
    return TicketStatus.ACTIVE

def time_left_label(ticket: Ticket, now: datetime) -> str:
    remaining = (ticket.valid_until - now).total_seconds()
    if remaining <= 0:
        return "Expired"
    hours = int(remaining // 3600)
    minutes = int((remaining % 3600) // 60)
    return f"{hours}h {minutes}m"

class TicketService:
    """Issues tickets and redeems scanned codes"""

    def __init__(
        self,
        store: TicketStore,
        clock: Callable[[], datetime] = utc_now,
        tz: Optional[tzinfo] = None
    ):
        self.store = store
        self.clock = clock
        self.tz = tz or service_timezone()

    def issue(
        self,
        caller: Optional[CallerContext],
        fare_category: FareCategory,
        line: str,
        from_station: str,
        to_station: str
    ) -> Ticket:
        """Issue a new active ticket owned by the caller"""
        if caller is None or not caller.user_id:
            raise AuthenticationRequired()

        category = FareCategory(fare_category)
        issued_at = self.clock()
        ticket_id = str(uuid.uuid4())

        ticket = Ticket(
            id=ticket_id,
            user_id=caller.user_id,
            type=category,
            line=line,
            from_station=from_station,
            to_station=to_station,
            qr_code=build_scan_code(ticket_id, caller.user_id, issued_at),
            valid_until=compute_valid_until(issued_at, category, self.tz),
            status=TicketStatus.ACTIVE,
            created_at=issued_at
        )

        stored = self.store.insert(ticket)
        logger.info(
            "Issued %s ticket %s for user %s (%s: %s -> %s)",
            category.value, stored.id, caller.user_id, line, from_station, to_station
        )
        return stored

    def validate(self, raw_scan_text: str) -> ValidationResult:
        """Resolve scanned text to a ticket and redeem it if it is still usable.

        Never raises: store failures come back as a negative verdict.
        """
        try:
            return self._validate(raw_scan_text or "")
        except (PersistenceError, SQLAlchemyError):
            logger.exception("Ticket validation failed against the store")
            return ValidationResult(valid=False, message=MSG_INVALID_QR)

    def _validate(self, raw_scan_text: str) -> ValidationResult:
        text = raw_scan_text.strip()
        ticket = self._resolve(text)

        if ticket is None:
            logger.info("Scan did not resolve to a ticket")
            return ValidationResult(valid=False, message=MSG_INVALID_TICKET)

        if ticket.status == TicketStatus.USED:
            return ValidationResult(valid=False, ticket=ticket, message=MSG_ALREADY_USED)

        now = self.clock()
        if ticket.status == TicketStatus.EXPIRED or now > ticket.valid_until:
            return ValidationResult(valid=False, ticket=ticket, message=MSG_EXPIRED)

        outcome = self.store.update_status_conditional(
            ticket.id, TicketStatus.ACTIVE, TicketStatus.USED, used_at=now
        )

        if outcome == UpdateOutcome.CONFLICT:
            # Someone else redeemed (or the row changed) between our read and write
            current = self.store.find_by_id(ticket.id) or ticket
            if current.status == TicketStatus.EXPIRED:
                return ValidationResult(valid=False, ticket=current, message=MSG_EXPIRED)
            return ValidationResult(valid=False, ticket=current, message=MSG_ALREADY_USED)

        redeemed = self.store.find_by_id(ticket.id)
        if redeemed is None:
            redeemed = ticket.model_copy(update={"status": TicketStatus.USED, "used_at": now})

        logger.info("Validated ticket %s", ticket.id)
        return ValidationResult(valid=True, ticket=redeemed, message=MSG_VALIDATED)

    def _resolve(self, text: str) -> Optional[Ticket]:
        if not text:
            return None

        payload = parse_scan_code(text)
        if payload is not None and payload.ticket_id:
            ticket = self.store.find_by_id(payload.ticket_id)
            if ticket is not None:
                return ticket

        ticket = self.store.find_by_scan_code(text)
        if ticket is not None:
            return ticket

        # Operators may type a bare ticket id instead of pasting the code
        if payload is None and _looks_like_ticket_id(text):
            return self.store.find_by_id(text)

        return None

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return self.store.find_by_id(ticket_id)

    def list_user_tickets(self, caller: Optional[CallerContext]) -> List[Ticket]:
        if caller is None:
            raise AuthenticationRequired()
        return self.store.list_for_user(caller.user_id)

    def list_active_tickets(self, caller: Optional[CallerContext]) -> List[Ticket]:
        if caller is None:
            raise AuthenticationRequired()
        return self.store.list_for_user(caller.user_id, active_only=True, now=self.clock())

    def to_view(self, ticket: Ticket) -> TicketView:
        now = self.clock()
        return TicketView(
            **ticket.model_dump(),
            effective_status=effective_status(ticket, now),
            time_left=time_left_label(ticket, now),
            price=FARE_CATALOGUE[ticket.type].price
        )

    def generate_qr_code_image(self, ticket: Ticket, size: int = 300, error_correction: str = "H") -> bytes:
        """Render the ticket's scan code as a PNG"""
        qr = qrcode.QRCode(
            version=None,
            error_correction=getattr(constants, f"ERROR_CORRECT_{error_correction}"),
            box_size=10,
            border=4,
        )
        qr.add_data(ticket.qr_code)
        qr.make(fit=True)

        qr_image = qr.make_image(fill_color="black", back_color="white").convert("RGB")
        qr_image = qr_image.resize((size, size), Image.NEAREST)

        buffer = BytesIO()
        qr_image.save(buffer, format="PNG")
        return buffer.getvalue()

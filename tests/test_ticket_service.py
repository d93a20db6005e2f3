import json
import uuid
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from src.auth.schemas import CallerContext
from src.exceptions import AuthenticationRequired, PersistenceError
from src.tickets.schemas import FareCategory, Ticket, TicketStatus
from src.tickets.service import (
    MSG_ALREADY_USED, MSG_EXPIRED, MSG_INVALID_QR, MSG_INVALID_TICKET, MSG_VALIDATED,
    TicketService, add_calendar_month, build_scan_code, compute_valid_until,
    effective_status, parse_scan_code, time_left_label
)
from src.tickets.store import SQLAlchemyTicketStore, UpdateOutcome

from conftest import FIXED_NOW

IST = ZoneInfo("Asia/Kolkata")

class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

@pytest.fixture()
def clock():
    return Clock(FIXED_NOW)

@pytest.fixture()
def store(db_session):
    return SQLAlchemyTicketStore(db_session)

@pytest.fixture()
def service(store, clock):
    return TicketService(store, clock=clock, tz=IST)

def issue_single(service, caller):
    return service.issue(caller, FareCategory.SINGLE, "Western Line", "Andheri", "Churchgate")

# Validity window

def test_single_ticket_valid_until_end_of_local_day():
    valid_until = compute_valid_until(FIXED_NOW, FareCategory.SINGLE, IST)
    assert valid_until == datetime(2024, 3, 15, 23, 59, 59, 999000, tzinfo=IST)

def test_day_tickets_share_the_same_deadline():
    deadlines = {
        compute_valid_until(FIXED_NOW, category, IST)
        for category in (FareCategory.SINGLE, FareCategory.RETURN, FareCategory.DAILY)
    }
    assert len(deadlines) == 1

def test_local_day_not_utc_day():
    # 20:00 UTC on the 15th is already the 16th in Mumbai
    late = datetime(2024, 3, 15, 20, 0, tzinfo=timezone.utc)
    valid_until = compute_valid_until(late, FareCategory.SINGLE, IST)
    assert valid_until.astimezone(IST).day == 16

def test_monthly_pass_runs_one_calendar_month():
    valid_until = compute_valid_until(FIXED_NOW, FareCategory.MONTHLY, IST)
    assert valid_until == datetime(2024, 4, 15, 10, 0, tzinfo=IST)

def test_calendar_month_clamps_day():
    assert add_calendar_month(datetime(2024, 1, 31, 9, 0)) == datetime(2024, 2, 29, 9, 0)
    assert add_calendar_month(datetime(2023, 12, 31, 9, 0)) == datetime(2024, 1, 31, 9, 0)

# Scan code

def test_scan_code_is_compact_json():
    code = build_scan_code("t-1", "u-1", FIXED_NOW)
    assert " " not in code
    assert json.loads(code) == {
        "ticketId": "t-1",
        "userId": "u-1",
        "timestamp": int(FIXED_NOW.timestamp() * 1000),
    }

def test_parse_scan_code_accepts_partial_payloads():
    payload = parse_scan_code('{"id": "abc"}')
    assert payload.ticket_id == "abc"
    assert payload.user_id is None

def test_parse_scan_code_rejects_non_objects():
    assert parse_scan_code("not json") is None
    assert parse_scan_code("[1, 2]") is None
    assert parse_scan_code('"just a string"') is None

# Issuance

def test_issue_requires_caller(service):
    with pytest.raises(AuthenticationRequired):
        service.issue(None, FareCategory.SINGLE, "Western Line", "Andheri", "Churchgate")

def test_issue_creates_active_ticket(service, rider_caller):
    ticket = issue_single(service, rider_caller)

    assert ticket.status == TicketStatus.ACTIVE
    assert ticket.user_id == rider_caller.user_id
    assert ticket.used_at is None
    assert ticket.created_at == FIXED_NOW
    assert ticket.valid_until == datetime(2024, 3, 15, 23, 59, 59, 999000, tzinfo=IST)
    assert json.loads(ticket.qr_code)["ticketId"] == ticket.id

def test_issue_generates_distinct_codes(service, rider_caller):
    first = issue_single(service, rider_caller)
    second = issue_single(service, rider_caller)
    assert first.id != second.id
    assert first.qr_code != second.qr_code

# Validation

def test_issue_then_redeem(service, clock, rider_caller):
    ticket = issue_single(service, rider_caller)
    clock.now = FIXED_NOW + timedelta(hours=1)

    result = service.validate(ticket.qr_code)

    assert result.valid is True
    assert result.message == MSG_VALIDATED
    assert result.ticket.status == TicketStatus.USED
    assert result.ticket.used_at == clock.now

def test_second_validation_reports_already_used(service, clock, rider_caller):
    ticket = issue_single(service, rider_caller)
    first = service.validate(ticket.qr_code)

    clock.now = FIXED_NOW + timedelta(minutes=5)
    second = service.validate(ticket.qr_code)

    assert second.valid is False
    assert second.message == MSG_ALREADY_USED
    assert second.ticket.used_at == first.ticket.used_at

def test_expired_ticket_keeps_active_status(service, clock, store, rider_caller):
    ticket = issue_single(service, rider_caller)
    clock.now = ticket.valid_until + timedelta(seconds=1)

    result = service.validate(ticket.qr_code)

    assert result.valid is False
    assert result.message == MSG_EXPIRED
    assert store.find_by_id(ticket.id).status == TicketStatus.ACTIVE

def test_stored_expired_status_is_honoured(service, store, rider_caller):
    ticket = issue_single(service, rider_caller)
    assert store.update_status_conditional(
        ticket.id, TicketStatus.ACTIVE, TicketStatus.EXPIRED
    ) == UpdateOutcome.SUCCESS

    result = service.validate(ticket.qr_code)
    assert result.message == MSG_EXPIRED

@pytest.mark.parametrize("text", ["", "   ", "not json, not a real code", "{}", '{"ticketId": "missing"}', "[]", "[" * 3000 + "]" * 3000])
def test_garbage_is_invalid_ticket(service, text):
    result = service.validate(text)
    assert result.valid is False
    assert result.ticket is None
    assert result.message == MSG_INVALID_TICKET

def test_payload_id_wins_over_verbatim_match(service, store, rider_caller):
    target = issue_single(service, rider_caller)
    text = json.dumps({"ticketId": target.id, "note": "reprint"})

    # A second ticket whose stored code happens to be exactly this text
    decoy = target.model_copy(update={"id": str(uuid.uuid4()), "qr_code": text})
    store.insert(decoy)

    result = service.validate(text)

    assert result.valid is True
    assert result.ticket.id == target.id
    assert store.find_by_id(decoy.id).status == TicketStatus.ACTIVE

def test_verbatim_code_lookup_when_not_a_payload(service, store, rider_caller):
    issued = issue_single(service, rider_caller)
    legacy = issued.model_copy(update={"id": str(uuid.uuid4()), "qr_code": "MUM-LEGACY-0001"})
    store.insert(legacy)

    result = service.validate("  MUM-LEGACY-0001 ")

    assert result.valid is True
    assert result.ticket.id == legacy.id

def test_bare_ticket_id_is_accepted(service, rider_caller):
    ticket = issue_single(service, rider_caller)
    result = service.validate(ticket.id)
    assert result.valid is True
    assert result.ticket.id == ticket.id

class RacingStore(SQLAlchemyTicketStore):
    """Lets a competing validator redeem the ticket between our read and our write"""

    def __init__(self, db, competitor: TicketService):
        super().__init__(db)
        self.competitor = competitor
        self.competitor_result = None

    def update_status_conditional(self, ticket_id, expected_status, new_status, **extra_fields):
        if self.competitor_result is None:
            self.competitor_result = self.competitor.validate(ticket_id)
        return super().update_status_conditional(ticket_id, expected_status, new_status, **extra_fields)

def test_concurrent_redemption_has_one_winner(db_session, session_factory, clock, rider_caller):
    issuer = TicketService(SQLAlchemyTicketStore(db_session), clock=clock, tz=IST)
    ticket = issue_single(issuer, rider_caller)

    other_db = session_factory()
    try:
        competitor = TicketService(SQLAlchemyTicketStore(other_db), clock=clock, tz=IST)
        racing = TicketService(RacingStore(db_session, competitor), clock=clock, tz=IST)

        result = racing.validate(ticket.qr_code)
    finally:
        other_db.close()

    assert racing.store.competitor_result.valid is True
    assert result.valid is False
    assert result.message == MSG_ALREADY_USED

def test_conditional_update_reports_conflict(store, service, rider_caller):
    ticket = issue_single(service, rider_caller)
    assert store.update_status_conditional(ticket.id, TicketStatus.ACTIVE, TicketStatus.USED) == UpdateOutcome.SUCCESS
    assert store.update_status_conditional(ticket.id, TicketStatus.ACTIVE, TicketStatus.USED) == UpdateOutcome.CONFLICT

class BrokenStore(SQLAlchemyTicketStore):
    def find_by_id(self, ticket_id):
        raise PersistenceError("database unavailable")

    def find_by_scan_code(self, code):
        raise PersistenceError("database unavailable")

def test_store_failure_becomes_negative_verdict(db_session, clock):
    service = TicketService(BrokenStore(db_session), clock=clock, tz=IST)
    result = service.validate('{"ticketId": "abc"}')
    assert result.valid is False
    assert result.message == MSG_INVALID_QR

# Read operations

def test_list_active_excludes_used_and_expired(service, clock, rider_caller):
    used = issue_single(service, rider_caller)
    service.validate(used.qr_code)
    monthly = service.issue(rider_caller, FareCategory.MONTHLY, "Central Line", "CSMT", "Thane")
    issue_single(service, rider_caller)

    assert len(service.list_user_tickets(rider_caller)) == 3
    assert len(service.list_active_tickets(rider_caller)) == 2

    clock.now = FIXED_NOW + timedelta(days=2)
    active = service.list_active_tickets(rider_caller)
    assert [ticket.id for ticket in active] == [monthly.id]

def test_list_tickets_is_per_user(service, rider_caller):
    issue_single(service, rider_caller)
    stranger = CallerContext(user_id=str(uuid.uuid4()))
    assert service.list_user_tickets(stranger) == []

def _ticket(status=TicketStatus.ACTIVE, valid_until=FIXED_NOW + timedelta(hours=2, minutes=30)):
    return Ticket(
        id="t", user_id="u", type=FareCategory.SINGLE, line="Western Line",
        from_station="Andheri", to_station="Churchgate", qr_code="{}",
        valid_until=valid_until, status=status, created_at=FIXED_NOW
    )

def test_effective_status():
    assert effective_status(_ticket(), FIXED_NOW) == TicketStatus.ACTIVE
    assert effective_status(_ticket(TicketStatus.USED, FIXED_NOW - timedelta(days=1)), FIXED_NOW) == TicketStatus.USED
    assert effective_status(_ticket(valid_until=FIXED_NOW - timedelta(seconds=1)), FIXED_NOW) == TicketStatus.EXPIRED
    assert effective_status(_ticket(TicketStatus.EXPIRED), FIXED_NOW) == TicketStatus.EXPIRED

def test_time_left_label():
    assert time_left_label(_ticket(), FIXED_NOW) == "2h 30m"
    assert time_left_label(_ticket(valid_until=FIXED_NOW), FIXED_NOW) == "Expired"

def test_qr_image_is_png(service, rider_caller):
    ticket = issue_single(service, rider_caller)
    image = service.generate_qr_code_image(ticket, size=200)
    assert image.startswith(b"\x89PNG")

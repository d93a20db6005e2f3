from fastapi import APIRouter, Depends, HTTPException, status, Query, WebSocket
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List, Literal, Optional

from src.auth.dependencies import get_caller, require_admin
from src.auth.schemas import CallerContext
from src.database import get_db, get_session_factory
from src.exceptions import AuthenticationRequired, PersistenceError
from src.realtime.feed import change_feed
from src.tickets.schemas import (
    FARE_CATALOGUE, FareOption, TicketListResponse, TicketPurchaseRequest,
    TicketValidationRequest, TicketView, ValidationResult
)
from src.tickets.service import TicketService
from src.tickets.store import SQLAlchemyTicketStore
from src.tickets.websocket import scan_session_endpoint

router = APIRouter()

def get_ticket_service(db: Session = Depends(get_db)) -> TicketService:
    return TicketService(SQLAlchemyTicketStore(db, change_feed))

def _service_unavailable(e: PersistenceError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=e.message
    )

@router.get("/fares", response_model=List[FareOption])
def list_fares():
    """Fare categories with display prices"""
    return list(FARE_CATALOGUE.values())

@router.post("", response_model=TicketView, status_code=status.HTTP_201_CREATED)
def purchase_ticket(
    request: TicketPurchaseRequest,
    caller: CallerContext = Depends(get_caller),
    service: TicketService = Depends(get_ticket_service)
):
    """Purchase a ticket for the authenticated user"""
    try:
        ticket = service.issue(
            caller,
            request.type,
            request.line,
            request.from_station,
            request.to_station
        )
    except AuthenticationRequired as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
    except PersistenceError as e:
        raise _service_unavailable(e)
    return service.to_view(ticket)

@router.get("", response_model=TicketListResponse)
def list_my_tickets(
    caller: CallerContext = Depends(get_caller),
    service: TicketService = Depends(get_ticket_service)
):
    """All tickets of the authenticated user, newest first"""
    try:
        tickets = service.list_user_tickets(caller)
    except PersistenceError as e:
        raise _service_unavailable(e)
    views = [service.to_view(ticket) for ticket in tickets]
    return TicketListResponse(tickets=views, total=len(views))

@router.get("/active", response_model=TicketListResponse)
def list_active_tickets(
    caller: CallerContext = Depends(get_caller),
    service: TicketService = Depends(get_ticket_service)
):
    """Tickets that are still active and inside their validity window"""
    try:
        tickets = service.list_active_tickets(caller)
    except PersistenceError as e:
        raise _service_unavailable(e)
    views = [service.to_view(ticket) for ticket in tickets]
    return TicketListResponse(tickets=views, total=len(views))

# Ticket Validation Endpoints
@router.post("/validate", response_model=ValidationResult)
def validate_ticket(
    validation_request: TicketValidationRequest,
    operator: CallerContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    """Validate (and redeem) a scanned or typed ticket code"""
    return service.validate(validation_request.qr_data)

@router.websocket("/scan/ws")
async def scan_ticket_session(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    session_factory = Depends(get_session_factory)
):
    """Operator scan session driving the browser camera"""
    await scan_session_endpoint(websocket, db, session_factory, token)

def _get_owned_ticket(ticket_id: str, caller: CallerContext, service: TicketService):
    try:
        ticket = service.get_ticket(ticket_id)
    except PersistenceError as e:
        raise _service_unavailable(e)

    if not ticket:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ticket not found"
        )

    if ticket.user_id != caller.user_id and not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Ticket does not belong to this user"
        )

    return ticket

@router.get("/{ticket_id}", response_model=TicketView)
def get_ticket(
    ticket_id: str,
    caller: CallerContext = Depends(get_caller),
    service: TicketService = Depends(get_ticket_service)
):
    """Get specific ticket details"""
    return service.to_view(_get_owned_ticket(ticket_id, caller, service))

@router.get("/{ticket_id}/qr")
def get_ticket_qr_code(
    ticket_id: str,
    size: int = Query(300, ge=100, le=1000, description="QR code size in pixels"),
    error_correction: Literal["L", "M", "Q", "H"] = Query("H", description="QR error correction level"),
    caller: CallerContext = Depends(get_caller),
    service: TicketService = Depends(get_ticket_service)
):
    """Get QR code image for ticket"""
    ticket = _get_owned_ticket(ticket_id, caller, service)
    image = service.generate_qr_code_image(ticket, size=size, error_correction=error_correction)
    return Response(
        content=image,
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="ticket_{ticket_id}_qr.png"'}
    )

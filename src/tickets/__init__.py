"""
Ticketing Module

Ticket purchase, QR scan codes and gate validation for the Mumbai Transit
System.

Key Components:
- schemas.py: fare categories, ticket records, scan payload and verdict models
- store.py: ticket store interface and its SQLAlchemy implementation, whose
  conditional status update is what prevents a ticket being redeemed twice
- service.py: issuance (validity window, scan code) and validation rules
- scanner.py: scan session controller (camera acquisition, decode-once lock,
  manual entry fallback, scan again, bounded camera stop)
- websocket.py: operator scan sessions over WebSocket, with the browser camera
  as the capture device
- router.py: FastAPI endpoints for tickets, QR images and validation
"""

from .router import router
from .service import TicketService
from .store import TicketStore, SQLAlchemyTicketStore, UpdateOutcome
from .scanner import ScanSession, ScanState, CaptureDevice, StopOutcome
from .schemas import (
    FareCategory, TicketStatus, Ticket, TicketView, ValidationResult,
    ScanCodePayload, FARE_CATALOGUE
)

__all__ = [
    "router",
    "TicketService",
    "TicketStore",
    "SQLAlchemyTicketStore",
    "UpdateOutcome",
    "ScanSession",
    "ScanState",
    "CaptureDevice",
    "StopOutcome",
    "FareCategory",
    "TicketStatus",
    "Ticket",
    "TicketView",
    "ValidationResult",
    "ScanCodePayload",
    "FARE_CATALOGUE",
]

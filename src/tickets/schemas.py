from pydantic import BaseModel, Field, AliasChoices, ConfigDict, field_validator
from typing import List, Optional, Literal
from datetime import datetime
from decimal import Decimal
from enum import Enum

class FareCategory(str, Enum):
    """Fare category enumeration; decides price and validity window"""
    SINGLE = "single"
    RETURN = "return"
    DAILY = "daily"
    MONTHLY = "monthly"

class TicketStatus(str, Enum):
    """Ticket status enumeration"""
    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"

class FareOption(BaseModel):
    """Display information for a fare category"""
    id: FareCategory
    name: str
    price: Decimal
    currency: str = "INR"
    description: str

FARE_CATALOGUE = {
    FareCategory.SINGLE: FareOption(
        id=FareCategory.SINGLE, name="Single Journey", price=Decimal("15"),
        description="Valid until midnight"
    ),
    FareCategory.RETURN: FareOption(
        id=FareCategory.RETURN, name="Return Journey", price=Decimal("25"),
        description="Round trip, valid until midnight"
    ),
    FareCategory.DAILY: FareOption(
        id=FareCategory.DAILY, name="Daily Pass", price=Decimal("50"),
        description="Unlimited rides until midnight"
    ),
    FareCategory.MONTHLY: FareOption(
        id=FareCategory.MONTHLY, name="Monthly Pass", price=Decimal("500"),
        description="Unlimited rides for one calendar month"
    ),
}

# Ticket Models
class TicketPurchaseRequest(BaseModel):
    """Request to purchase a ticket"""
    type: FareCategory
    line: str = Field(..., min_length=1, max_length=100)
    from_station: str = Field(..., min_length=1, max_length=255)
    to_station: str = Field(..., min_length=1, max_length=255)

    @field_validator("line", "from_station", "to_station")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

class Ticket(BaseModel):
    """Stored ticket record"""
    id: str
    user_id: str
    type: FareCategory
    line: str
    from_station: str
    to_station: str
    qr_code: str
    valid_until: datetime
    status: TicketStatus
    used_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class TicketView(Ticket):
    """Ticket with display-time derived fields"""
    effective_status: TicketStatus
    time_left: str
    price: Decimal

class ScanCodePayload(BaseModel):
    """Structured content of a ticket's scan code. Every field is optional;
    a payload without a ticket id is treated as unresolvable."""
    ticket_id: Optional[str] = Field(None, validation_alias=AliasChoices("ticketId", "id"))
    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("userId", "user_id"))
    timestamp: Optional[int] = None

    model_config = ConfigDict(extra="ignore")

# Validation Models
class TicketValidationRequest(BaseModel):
    """Text recovered from a scanned code, or typed by an operator"""
    qr_data: str = Field(..., max_length=4096)

class ValidationResult(BaseModel):
    """Verdict of a validation attempt"""
    valid: bool
    ticket: Optional[Ticket] = None
    message: str

# Scan session snapshots
class ScanSessionSnapshot(BaseModel):
    """Externally visible state of a scan session"""
    state: Literal["idle", "acquiring", "scanning", "processing", "resolved", "error", "closed"]
    verdict: Optional[ValidationResult] = None
    error: Optional[str] = None
    manual_code: str = ""
    decode_locked: bool = False

class TicketListResponse(BaseModel):
    tickets: List[TicketView]
    total: int

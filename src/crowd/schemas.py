from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime
from enum import Enum

class CrowdLevel(str, Enum):
    """Coach occupancy bands"""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"

class AlertType(str, Enum):
    CROWD = "crowd"
    DELAY = "delay"
    DISRUPTION = "disruption"
    SAFETY = "safety"

class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

# Crowd readings
class CrowdReadingBase(BaseModel):
    line: str = Field(..., min_length=1, max_length=100)
    train_number: str = Field(..., min_length=1, max_length=50)
    direction: Optional[str] = None
    coach_number: int = Field(..., ge=1)
    passenger_count: int = Field(0, ge=0)
    capacity: int = Field(..., gt=0)
    platform: Optional[str] = None
    next_arrival: Optional[str] = None

class CrowdReadingCreate(CrowdReadingBase):
    """Sensor or operator report for one coach; the level is derived when omitted"""
    occupancy_level: Optional[CrowdLevel] = None

class CrowdReading(CrowdReadingBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    occupancy_level: CrowdLevel
    updated_at: datetime

class CrowdListResponse(BaseModel):
    readings: List[CrowdReading]
    total: int

# Alerts
class AlertCreate(BaseModel):
    type: AlertType
    message: str = Field(..., min_length=1, max_length=1000)
    line: Optional[str] = None
    station: Optional[str] = None
    severity: AlertSeverity = AlertSeverity.LOW
    duration_minutes: int = Field(60, ge=1, le=7 * 24 * 60)

    @field_validator("message")
    @classmethod
    def strip_message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Alert message must not be blank")
        return value

class Alert(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: AlertType
    message: str
    line: Optional[str] = None
    station: Optional[str] = None
    severity: AlertSeverity
    created_at: datetime
    expires_at: datetime

class NetworkStats(BaseModel):
    """Network-wide snapshot for the operator dashboard"""
    active_trains: int
    avg_occupancy: float
    incidents: int

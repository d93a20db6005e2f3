from pydantic import BaseModel, ConfigDict
from typing import List, Optional, Literal
from decimal import Decimal

from src.crowd.schemas import CrowdLevel

class LineInfo(BaseModel):
    """A line of the suburban or metro network"""
    name: str
    type: Literal["suburban", "metro"]
    color: str

class StationInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    line: str
    is_metro: bool = False

class RouteRecord(BaseModel):
    """Static station-to-station connection"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    from_station: str
    to_station: str
    line: str
    distance_km: Optional[Decimal] = None
    base_fare: Decimal
    duration_minutes: int

class RouteStep(BaseModel):
    """Individual leg of a suggested journey"""
    type: Literal["train", "metro", "walk"]
    line: Optional[str] = None
    from_station: str
    to_station: str
    platform: Optional[str] = None
    duration: int
    crowd_level: Optional[CrowdLevel] = None

class RouteOption(BaseModel):
    """Complete journey suggestion with crowd estimate"""
    id: str
    from_station: str
    to_station: str
    steps: List[RouteStep]
    total_time: int
    crowd_level: CrowdLevel
    fare: Decimal
    time_saved: Optional[int] = None

class RouteSuggestionResponse(BaseModel):
    from_station: str
    to_station: str
    options: List[RouteOption]
    total_options: int

"""
Route Information Module

Line catalogue, station lookup and journey suggestions for the Mumbai
suburban and metro network.

- Static catalogue of suburban and metro lines
- Station listing (optionally per line)
- Direct journeys from the static route table
- Walk-metro-walk alternative when both ends have a metro station
- Ranking by total time plus a penalty for the live crowd level

Key Components:
- service.py: catalogue queries and suggestion scoring
- router.py: FastAPI endpoints for lines, stations and suggestions
- schemas.py: Pydantic models for lines, stations and journey options
"""

from .router import router
from .service import RouteService, LINES, CROWD_WEIGHT
from .schemas import LineInfo, StationInfo, RouteRecord, RouteStep, RouteOption, RouteSuggestionResponse

__all__ = [
    "router",
    "RouteService",
    "LINES",
    "CROWD_WEIGHT",
    "LineInfo",
    "StationInfo",
    "RouteRecord",
    "RouteStep",
    "RouteOption",
    "RouteSuggestionResponse",
]

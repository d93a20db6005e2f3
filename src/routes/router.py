from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from src.database import get_db
from src.routes.schemas import LineInfo, RouteRecord, RouteSuggestionResponse, StationInfo
from src.routes.service import RouteService

router = APIRouter()

def get_route_service(db: Session = Depends(get_db)) -> RouteService:
    return RouteService(db)

@router.get("/lines", response_model=List[LineInfo])
def list_lines():
    """Supported suburban and metro lines"""
    return RouteService.get_lines()

@router.get("/stations", response_model=List[StationInfo])
def list_stations(
    line: Optional[str] = Query(None, description="Filter by line name"),
    service: RouteService = Depends(get_route_service)
):
    return service.get_stations(line)

@router.get("", response_model=List[RouteRecord])
def list_routes(service: RouteService = Depends(get_route_service)):
    """Static station-to-station connections"""
    return service.get_routes()

@router.get("/suggest", response_model=RouteSuggestionResponse)
def suggest_routes(
    from_station: str = Query(..., alias="from", min_length=1),
    to_station: str = Query(..., alias="to", min_length=1),
    service: RouteService = Depends(get_route_service)
):
    """Suggest journeys between two stations, ranked by time and crowding"""
    from_station = from_station.strip()
    to_station = to_station.strip()
    if from_station.lower() == to_station.lower():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Origin and destination must be different stations"
        )

    options = service.suggest_routes(from_station, to_station)
    return RouteSuggestionResponse(
        from_station=from_station,
        to_station=to_station,
        options=options,
        total_options=len(options)
    )

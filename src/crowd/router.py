from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from src.auth.dependencies import require_admin
from src.auth.schemas import CallerContext
from src.crowd.schemas import (
    Alert, AlertCreate, CrowdListResponse, CrowdReading, CrowdReadingCreate, NetworkStats
)
from src.crowd.service import CrowdService
from src.database import get_db
from src.exceptions import PersistenceError
from src.realtime.feed import change_feed

router = APIRouter()

def get_crowd_service(db: Session = Depends(get_db)) -> CrowdService:
    return CrowdService(db, change_feed)

# Crowd Endpoints
@router.get("/crowd", response_model=CrowdListResponse)
def get_crowd_data(
    line: Optional[str] = Query(None, description="Filter by line name"),
    service: CrowdService = Depends(get_crowd_service)
):
    """Current coach occupancy readings"""
    readings = service.get_crowd_data(line)
    return CrowdListResponse(readings=readings, total=len(readings))

@router.get("/crowd/trains/{train_number}", response_model=List[CrowdReading])
def get_train_crowd(
    train_number: str,
    service: CrowdService = Depends(get_crowd_service)
):
    """Per-coach occupancy of one train"""
    readings = service.get_train_crowd(train_number)
    if not readings:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No crowd data for train {train_number}"
        )
    return readings

@router.post("/crowd", response_model=CrowdReading)
def report_crowd_reading(
    reading: CrowdReadingCreate,
    operator: CallerContext = Depends(require_admin),
    service: CrowdService = Depends(get_crowd_service)
):
    """Record a coach occupancy reading"""
    try:
        return service.upsert_reading(reading)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)

@router.get("/crowd/stats", response_model=NetworkStats)
def get_network_stats(service: CrowdService = Depends(get_crowd_service)):
    return service.get_network_stats()

# Alert Endpoints
@router.get("/alerts", response_model=List[Alert])
def get_active_alerts(service: CrowdService = Depends(get_crowd_service)):
    """Alerts that have not yet expired"""
    return service.get_active_alerts()

@router.post("/alerts", response_model=Alert, status_code=status.HTTP_201_CREATED)
def create_alert(
    alert: AlertCreate,
    operator: CallerContext = Depends(require_admin),
    service: CrowdService = Depends(get_crowd_service)
):
    """Raise a service alert"""
    try:
        return service.create_alert(alert)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)

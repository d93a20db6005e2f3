from typing import List, Optional
from datetime import datetime, timedelta
import logging
import uuid

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from src.crowd.schemas import (
    Alert, AlertCreate, AlertType, CrowdLevel, CrowdReading, CrowdReadingCreate,
    NetworkStats
)
from src.exceptions import PersistenceError
from src.models import Alert as AlertRow, CrowdReading as CrowdRow
from src.realtime.feed import ChangeEvent, ChangeFeed
from src.time_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

# Readings older than this no longer describe a train in service
LIVE_WINDOW = timedelta(minutes=5)
INCIDENT_WINDOW = timedelta(hours=24)

def occupancy_ratio(passenger_count: int, capacity: int) -> float:
    return passenger_count / capacity if capacity else 0.0

def crowd_level_for_ratio(ratio: float) -> CrowdLevel:
    if ratio > 0.7:
        return CrowdLevel.HIGH
    if ratio > 0.4:
        return CrowdLevel.MODERATE
    return CrowdLevel.LOW

def _reading(row: CrowdRow) -> CrowdReading:
    reading = CrowdReading.model_validate(row)
    return reading.model_copy(update={"updated_at": as_utc(row.updated_at)})

def _alert(row: AlertRow) -> Alert:
    alert = Alert.model_validate(row)
    return alert.model_copy(update={
        "created_at": as_utc(row.created_at),
        "expires_at": as_utc(row.expires_at),
    })

class CrowdService:
    """Coach occupancy readings, service alerts and network statistics"""

    def __init__(self, db: Session, change_feed: Optional[ChangeFeed] = None, clock=utc_now):
        self.db = db
        self.change_feed = change_feed
        self.clock = clock

    def get_crowd_data(self, line: Optional[str] = None) -> List[CrowdReading]:
        """Latest readings, most recently updated first"""
        query = self.db.query(CrowdRow)
        if line:
            query = query.filter(CrowdRow.line == line)
        rows = query.order_by(CrowdRow.updated_at.desc()).all()
        return [_reading(row) for row in rows]

    def get_train_crowd(self, train_number: str) -> List[CrowdReading]:
        rows = (
            self.db.query(CrowdRow)
            .filter(CrowdRow.train_number == train_number)
            .order_by(CrowdRow.coach_number.asc())
            .all()
        )
        return [_reading(row) for row in rows]

    def get_live_readings(self, now: Optional[datetime] = None) -> List[CrowdReading]:
        """Readings updated inside the live window"""
        since = (now or self.clock()) - LIVE_WINDOW
        rows = self.db.query(CrowdRow).filter(CrowdRow.updated_at >= since).all()
        return [_reading(row) for row in rows]

    def upsert_reading(self, data: CrowdReadingCreate) -> CrowdReading:
        """Record the occupancy of one coach, replacing its previous reading"""
        level = data.occupancy_level or crowd_level_for_ratio(
            occupancy_ratio(data.passenger_count, data.capacity)
        )
        values = data.model_dump(exclude={"occupancy_level"})
        values["occupancy_level"] = level.value
        values["updated_at"] = self.clock()

        row = (
            self.db.query(CrowdRow)
            .filter(
                CrowdRow.train_number == data.train_number,
                CrowdRow.coach_number == data.coach_number
            )
            .first()
        )

        old = None
        if row is None:
            event = "INSERT"
            row = CrowdRow(id=str(uuid.uuid4()), **values)
            self.db.add(row)
        else:
            event = "UPDATE"
            old = {"id": row.id, "occupancy_level": row.occupancy_level}
            for key, value in values.items():
                setattr(row, key, value)

        try:
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Crowd reading for train %s coach %s rejected: %s",
                           data.train_number, data.coach_number, e)
            raise PersistenceError("Failed to save crowd reading") from e

        reading = _reading(row)
        self._publish("crowd_data", event, reading.model_dump(mode="json"), old)
        return reading

    def get_active_alerts(self, now: Optional[datetime] = None) -> List[Alert]:
        """Alerts that have not expired, newest first"""
        now = now or self.clock()
        rows = (
            self.db.query(AlertRow)
            .filter(AlertRow.expires_at > now)
            .order_by(AlertRow.created_at.desc())
            .all()
        )
        return [_alert(row) for row in rows]

    def create_alert(self, data: AlertCreate) -> Alert:
        created_at = self.clock()
        row = AlertRow(
            id=str(uuid.uuid4()),
            type=data.type.value,
            message=data.message,
            line=data.line,
            station=data.station,
            severity=data.severity.value,
            created_at=created_at,
            expires_at=created_at + timedelta(minutes=data.duration_minutes)
        )

        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Failed to save alert") from e

        alert = _alert(row)
        logger.info("Alert %s raised (%s, %s) on %s", alert.id, alert.type.value,
                    alert.severity.value, alert.line or "network")
        self._publish("alerts", "INSERT", alert.model_dump(mode="json"))
        return alert

    def get_network_stats(self) -> NetworkStats:
        now = self.clock()
        live = self.get_live_readings(now)
        all_rows = self.db.query(CrowdRow.passenger_count, CrowdRow.capacity).all()

        ratios = [occupancy_ratio(count, capacity) for count, capacity in all_rows]
        avg_occupancy = sum(ratios) / len(ratios) if ratios else 0.0

        incidents = (
            self.db.query(AlertRow)
            .filter(
                AlertRow.type == AlertType.DISRUPTION.value,
                AlertRow.created_at >= now - INCIDENT_WINDOW
            )
            .count()
        )

        return NetworkStats(
            active_trains=len({reading.train_number for reading in live}),
            avg_occupancy=round(avg_occupancy * 100, 1),
            incidents=incidents
        )

    def _publish(self, table: str, event: str, new: dict, old: Optional[dict] = None):
        if self.change_feed is None:
            return
        self.change_feed.publish(ChangeEvent(table=table, event=event, new=new, old=old))

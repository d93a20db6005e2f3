from typing import Dict, List, Optional
from decimal import Decimal
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from src.crowd.schemas import CrowdLevel
from src.crowd.service import CrowdService, crowd_level_for_ratio, occupancy_ratio
from src.models import Route, Station
from src.routes.schemas import LineInfo, RouteOption, RouteRecord, RouteStep, StationInfo

logger = logging.getLogger(__name__)

LINES = [
    LineInfo(name="Western Line", type="suburban", color="#00F0FF"),
    LineInfo(name="Central Line", type="suburban", color="#F59E0B"),
    LineInfo(name="Harbour Line", type="suburban", color="#10B981"),
    LineInfo(name="Metro Line 1", type="metro", color="#8B5CF6"),
    LineInfo(name="Metro Line 3", type="metro", color="#EC4899"),
]

# Minutes added to a journey's time when ranking, per crowd level
CROWD_WEIGHT: Dict[CrowdLevel, int] = {
    CrowdLevel.LOW: 0,
    CrowdLevel.MODERATE: 10,
    CrowdLevel.HIGH: 20,
}

# Line average assumed when no live reading exists
DEFAULT_CROWD_RATIO = 0.5

METRO_ALTERNATIVE_LINE = "Metro Line 3"
METRO_WALK_MINUTES = 5
METRO_RIDE_MINUTES = 25
METRO_FARE = Decimal("45")
METRO_TIME_SAVED = 10

def suggestion_score(option: RouteOption) -> int:
    return option.total_time + CROWD_WEIGHT[option.crowd_level]

class RouteService:
    """Station catalogue and crowd-aware journey suggestions"""

    def __init__(self, db: Session, crowd_service: Optional[CrowdService] = None):
        self.db = db
        self.crowd_service = crowd_service or CrowdService(db)

    @staticmethod
    def get_lines() -> List[LineInfo]:
        return list(LINES)

    def get_stations(self, line: Optional[str] = None) -> List[StationInfo]:
        query = self.db.query(Station)
        if line:
            query = query.filter(Station.line == line)
        return [StationInfo.model_validate(row) for row in query.order_by(Station.name.asc()).all()]

    def get_routes(self) -> List[RouteRecord]:
        rows = self.db.query(Route).order_by(Route.from_station.asc()).all()
        return [RouteRecord.model_validate(row) for row in rows]

    def line_crowd_levels(self) -> Dict[str, CrowdLevel]:
        """Average live occupancy per line, banded into crowd levels"""
        ratios: Dict[str, List[float]] = {}
        for reading in self.crowd_service.get_live_readings():
            ratios.setdefault(reading.line, []).append(
                occupancy_ratio(reading.passenger_count, reading.capacity)
            )
        return {
            line: crowd_level_for_ratio(sum(values) / len(values))
            for line, values in ratios.items()
        }

    def suggest_routes(self, from_station: str, to_station: str) -> List[RouteOption]:
        """Journey options between two stations, best first.

        Ranking is total minutes plus a crowd penalty, so a quieter
        journey can beat a slightly faster packed one.
        """
        options: List[RouteOption] = []

        direct = self._direct_option(from_station, to_station)
        if direct is not None:
            options.append(direct)

        metro = self._metro_alternative(from_station, to_station)
        if metro is not None:
            options.append(metro)

        options.sort(key=suggestion_score)
        logger.debug("%d route option(s) for %s -> %s", len(options), from_station, to_station)
        return options

    def _direct_option(self, from_station: str, to_station: str) -> Optional[RouteOption]:
        route = (
            self.db.query(Route)
            .filter(Route.from_station == from_station, Route.to_station == to_station)
            .first()
        )
        if route is None:
            return None

        level = self.line_crowd_levels().get(route.line, crowd_level_for_ratio(DEFAULT_CROWD_RATIO))
        return RouteOption(
            id=f"direct-{route.id}",
            from_station=route.from_station,
            to_station=route.to_station,
            steps=[RouteStep(
                type="train",
                line=route.line,
                from_station=route.from_station,
                to_station=route.to_station,
                duration=route.duration_minutes,
                crowd_level=level
            )],
            total_time=route.duration_minutes,
            crowd_level=level,
            fare=route.base_fare
        )

    def _metro_alternative(self, from_station: str, to_station: str) -> Optional[RouteOption]:
        """Walk-metro-walk journey, offered when both ends have a metro station nearby"""
        metro_names = [
            name for (name,) in self.db.query(Station.name)
            .filter(
                Station.is_metro.is_(True),
                or_(Station.name.ilike(f"%{from_station}%"), Station.name.ilike(f"%{to_station}%"))
            )
            .all()
        ]
        has_from = any(from_station.lower() in name.lower() for name in metro_names)
        has_to = any(to_station.lower() in name.lower() for name in metro_names)
        if not (has_from and has_to):
            return None

        steps = [
            RouteStep(type="walk", from_station=f"{from_station} Station", to_station="Metro Station",
                      duration=METRO_WALK_MINUTES),
            RouteStep(type="metro", line=METRO_ALTERNATIVE_LINE, from_station="Metro Station",
                      to_station=f"{to_station} Metro", duration=METRO_RIDE_MINUTES,
                      crowd_level=CrowdLevel.LOW),
            RouteStep(type="walk", from_station=f"{to_station} Metro", to_station=f"{to_station} Station",
                      duration=METRO_WALK_MINUTES),
        ]
        return RouteOption(
            id=f"metro-{from_station}-{to_station}",
            from_station=from_station,
            to_station=to_station,
            steps=steps,
            total_time=sum(step.duration for step in steps),
            crowd_level=CrowdLevel.LOW,
            fare=METRO_FARE,
            time_saved=METRO_TIME_SAVED
        )

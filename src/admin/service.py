from typing import Callable, Dict, List, Optional, Tuple
from datetime import datetime, timedelta, timezone, tzinfo
from collections import Counter

from sqlalchemy.orm import Session

from src.admin.schemas import ChartPoint, DashboardData, DashboardTotals, LineStat
from src.crowd.service import LIVE_WINDOW, occupancy_ratio
from src.models import Alert, CrowdReading, Ticket
from src.tickets.schemas import TicketStatus
from src.time_utils import as_utc, service_timezone, start_of_local_day, utc_now

BUCKET_HOURS = 3
BUCKET_COUNT = 8
TOP_LINES = 6

def build_time_buckets(
    created: List[datetime],
    now: datetime,
    tz: tzinfo,
    bucket_hours: int = BUCKET_HOURS,
    bucket_count: int = BUCKET_COUNT
) -> List[ChartPoint]:
    """Count timestamps into fixed-width buckets covering the last day.

    The last bucket ends at the top of the hour after ``now``; labels are
    the local clock hour a bucket starts at.
    """
    width = timedelta(hours=bucket_hours)
    end = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    start = end - width * bucket_count
    counts = [0] * bucket_count

    for moment in created:
        index = int((moment - start) // width)
        if 0 <= index < bucket_count:
            counts[index] += 1

    points = []
    for index, value in enumerate(counts):
        label = (start + width * index).astimezone(tz).strftime("%I %p").lstrip("0")
        points.append(ChartPoint(hour=label, value=value))
    return points

def rank_lines(counts: Dict[str, int], limit: int = TOP_LINES) -> List[LineStat]:
    """Lines by ticket count, each scaled against the busiest line"""
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]
    busiest = ranked[0][1] if ranked else 0
    return [
        LineStat(name=name, count=count, value=round(count / busiest * 100) if busiest else 0)
        for name, count in ranked
    ]

def crowd_by_line(rows: List[Tuple[str, int, int]], limit: int = TOP_LINES) -> List[LineStat]:
    totals: Dict[str, List[float]] = {}
    for line, passenger_count, capacity in rows:
        totals.setdefault(line or "Unknown", []).append(occupancy_ratio(passenger_count, capacity))
    stats = [
        LineStat(name=line, value=round(sum(ratios) / len(ratios) * 100), count=len(ratios))
        for line, ratios in totals.items()
    ]
    stats.sort(key=lambda stat: stat.value, reverse=True)
    return stats[:limit]

class DashboardService:
    """Aggregates tickets, alerts and crowd readings for operators"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now, tz: Optional[tzinfo] = None):
        self.db = db
        self.clock = clock
        self.tz = tz or service_timezone()

    def get_dashboard(self) -> DashboardData:
        now = self.clock()
        day_start = start_of_local_day(now, self.tz).astimezone(timezone.utc)

        total_tickets = self.db.query(Ticket).count()
        tickets_today = self.db.query(Ticket).filter(Ticket.created_at >= day_start).count()
        active_tickets = self.db.query(Ticket).filter(
            Ticket.status == TicketStatus.ACTIVE.value,
            Ticket.valid_until > now
        ).count()
        active_alerts = self.db.query(Alert).filter(Alert.expires_at > now).count()

        recent = self.db.query(Ticket.created_at, Ticket.line).filter(
            Ticket.created_at >= now - timedelta(hours=BUCKET_HOURS * BUCKET_COUNT)
        ).all()
        line_counts = Counter(line or "Unknown" for _, line in recent)

        crowd_rows = self.db.query(
            CrowdReading.line, CrowdReading.passenger_count, CrowdReading.capacity,
            CrowdReading.updated_at, CrowdReading.train_number
        ).all()
        ratios = [occupancy_ratio(count, capacity) for _, count, capacity, _, _ in crowd_rows]
        live_trains = {
            train for _, _, _, updated_at, train in crowd_rows
            if updated_at is not None and as_utc(updated_at) >= now - LIVE_WINDOW
        }

        return DashboardData(
            totals=DashboardTotals(
                total_tickets=total_tickets,
                tickets_today=tickets_today,
                active_tickets=active_tickets,
                active_alerts=active_alerts,
                active_trains=len(live_trains),
                avg_occupancy=round(sum(ratios) / len(ratios) * 100) if ratios else 0
            ),
            hourly_tickets=build_time_buckets([as_utc(created) for created, _ in recent], now, self.tz),
            top_lines=rank_lines(line_counts),
            crowd_by_line=crowd_by_line([(line, count, capacity) for line, count, capacity, _, _ in crowd_rows]),
            last_updated=now
        )

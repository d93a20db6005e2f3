from pydantic import BaseModel
from typing import List
from datetime import datetime

class DashboardTotals(BaseModel):
    """Headline counters"""
    total_tickets: int
    tickets_today: int
    active_tickets: int
    active_alerts: int
    active_trains: int
    avg_occupancy: int  # percent

class ChartPoint(BaseModel):
    hour: str
    value: int

class LineStat(BaseModel):
    name: str
    value: int  # percent
    count: int = 0

class DashboardData(BaseModel):
    """Operator dashboard response"""
    totals: DashboardTotals
    hourly_tickets: List[ChartPoint]
    top_lines: List[LineStat]
    crowd_by_line: List[LineStat]
    last_updated: datetime

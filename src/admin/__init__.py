"""
Admin Module

Operator dashboard for the Mumbai Transit System: ticket totals, tickets
issued per three-hour window over the last day, busiest lines and average
coach occupancy per line. All endpoints require an admin profile.
"""

from . import router, schemas, service

__all__ = [
    "router",
    "schemas",
    "service",
]

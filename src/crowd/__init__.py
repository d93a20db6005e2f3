"""
Crowd Module

Live coach occupancy and service alerts.

Key Components:
- schemas.py: crowd levels, readings, alerts and network statistics
- service.py: reading upsert, alert lifecycle and change feed publication
- router.py: FastAPI endpoints under /crowd and /alerts
"""

from .router import router
from .service import CrowdService, crowd_level_for_ratio

__all__ = ["router", "CrowdService", "crowd_level_for_ratio"]

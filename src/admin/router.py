from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.admin.schemas import DashboardData
from src.admin.service import DashboardService
from src.auth.dependencies import require_admin
from src.auth.schemas import CallerContext
from src.database import get_db

router = APIRouter()

@router.get("/dashboard", response_model=DashboardData)
def get_dashboard(
    admin_user: CallerContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get admin dashboard data"""
    return DashboardService(db).get_dashboard()

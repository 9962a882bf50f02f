from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from telem.auth import get_current_principal
from telem.authz import Principal, Resource, Action, authorize
from telem.crud import crud_dashboard
from telem.db.core import get_db
from telem.models.dashboard import DashboardOverview

router = APIRouter(
    prefix="/dashboard",
    tags=["dashboard"],
)


@router.get("/overview", response_model=DashboardOverview)
def read_overview(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Aggregate counts for the dashboard. Investors see figures for their own calculators.
    """
    authorize(principal, Resource.DASHBOARD, Action.READ)
    user_id = None if principal.is_advisor else principal.user_id
    return crud_dashboard.get_dashboard_overview(db, user_id=user_id)

from sqlalchemy.orm import Session
from typing import Optional, Dict, Any

from telem.db.core import UserDB, CalculatorDB, PropertyDB, AnalysisDB, UserRole
from telem.crud.crud_calculator import read_db_recent_calculators


def get_dashboard_overview(db: Session, user_id: Optional[int] = None, recent_limit: int = 5) -> Dict[str, Any]:
    """
    Aggregate counts for the dashboard.

    With a user_id the investor, calculator and analysis figures are limited
    to that user; the property catalog is shared and always counted in full.
    """
    investors = db.query(UserDB).filter(UserDB.role == UserRole.INVESTOR)
    calculators = db.query(CalculatorDB)
    analyses = db.query(AnalysisDB)

    if user_id is not None:
        investors = investors.filter(UserDB.id == user_id)
        calculators = calculators.filter(CalculatorDB.user_id == user_id)
        analyses = analyses.join(CalculatorDB, AnalysisDB.calculator_id == CalculatorDB.id).filter(CalculatorDB.user_id == user_id)

    return {
        "investors_count": investors.count(),
        "calculators_count": calculators.count(),
        "properties_count": db.query(PropertyDB).count(),
        "analyses_count": analyses.count(),
        "recent_calculators": read_db_recent_calculators(db, user_id=user_id, limit=recent_limit),
    }

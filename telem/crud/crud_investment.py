from collections import Counter
from sqlalchemy.orm import Session
from typing import Optional, List

from telem.db.core import InvestmentDB, PropertyDB, AnalysisDB, CalculatorDB, NotFoundError, atomic
from telem.models.investment import InvestmentCreate, InvestmentUpdate
from telem.crud.crud_calculator import lock_db_calculator
from telem.logging_config import get_logger

logger = get_logger(__name__)


# ===== SELECTION HELPERS =====

def _clear_selected(db: Session, calculator_id: int, exclude_id: Optional[int] = None) -> int:
    """Unset is_selected on every selected investment of the calculator except exclude_id"""
    query = db.query(InvestmentDB).filter(
        InvestmentDB.calculator_id == calculator_id,
        InvestmentDB.is_selected.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(InvestmentDB.id != exclude_id)

    siblings = query.all()
    for sibling in siblings:
        sibling.is_selected = False
    return len(siblings)


def _select_exclusively(db: Session, db_investment: InvestmentDB) -> None:
    # Caller must hold the calculator lock
    cleared = _clear_selected(db, db_investment.calculator_id, exclude_id=db_investment.id)
    db_investment.is_selected = True
    if cleared:
        logger.debug(f"Cleared selection on {cleared} sibling(s) of investment {db_investment.id}")


def _calculator_id_of(db: Session, investment_id: int) -> int:
    calculator_id = db.query(InvestmentDB.calculator_id).filter(InvestmentDB.id == investment_id).scalar()
    if calculator_id is None:
        raise NotFoundError(f"Investment with id {investment_id} not found")
    return calculator_id


def _lock_investment(db: Session, investment_id: int) -> InvestmentDB:
    """Lock the parent calculator, then load the investment fresh"""
    lock_db_calculator(db, _calculator_id_of(db, investment_id))
    db_investment = (
        db.query(InvestmentDB)
        .filter(InvestmentDB.id == investment_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not db_investment:
        raise NotFoundError(f"Investment with id {investment_id} not found")
    return db_investment


def _get_property(db: Session, property_id: int) -> PropertyDB:
    db_property = db.query(PropertyDB).filter(PropertyDB.id == property_id).first()
    if not db_property:
        raise NotFoundError(f"Property with id {property_id} not found")
    return db_property


# ===== DATABASE OPERATIONS =====

def create_db_investment(db: Session, investment_data: InvestmentCreate) -> InvestmentDB:
    """Add an investment option to a calculator and bump its investment_options_count"""

    with atomic(db):
        db_calculator = lock_db_calculator(db, investment_data.calculator_id)
        db_property = _get_property(db, investment_data.property_id)

        if investment_data.is_selected:
            _clear_selected(db, db_calculator.id)

        db_investment = InvestmentDB(
            calculator_id=db_calculator.id,
            property_id=db_property.id,
            name=investment_data.name or db_property.name,
            is_selected=investment_data.is_selected,
            price_override=investment_data.price_override,
            monthly_rent_override=investment_data.monthly_rent_override,
            has_furniture=investment_data.has_furniture,
            has_property_management=investment_data.has_property_management,
            has_real_estate_agent=investment_data.has_real_estate_agent,
        )
        db.add(db_investment)
        db_calculator.investment_options_count += 1

    db.refresh(db_investment)
    logger.info(f"Created investment {db_investment.id} in calculator {db_investment.calculator_id}")
    return db_investment


def read_db_investment(db: Session, investment_id: int) -> Optional[InvestmentDB]:
    return db.query(InvestmentDB).filter(InvestmentDB.id == investment_id).first()


def read_db_investments(db: Session, calculator_id: int, skip: int = 0, limit: int = 100) -> List[InvestmentDB]:
    return (
        db.query(InvestmentDB)
        .filter(InvestmentDB.calculator_id == calculator_id)
        .order_by(InvestmentDB.id)
        .offset(skip)
        .limit(limit)
        .all()
    )


def update_db_investment(db: Session, investment_id: int, investment_updates: InvestmentUpdate) -> InvestmentDB:
    """
    Update an investment option.

    Turning is_selected on clears it on the siblings first. A rename is
    copied onto investment_name of the analyses that reference it.
    """
    update_data = investment_updates.model_dump(exclude_unset=True)

    with atomic(db):
        db_investment = _lock_investment(db, investment_id)
        old_name = db_investment.name

        if 'property_id' in update_data:
            _get_property(db, update_data['property_id'])

        select = update_data.pop('is_selected', None)
        if select and not db_investment.is_selected:
            _select_exclusively(db, db_investment)
        elif select is False:
            db_investment.is_selected = False

        for field, value in update_data.items():
            setattr(db_investment, field, value)

        if db_investment.name != old_name:
            db.query(AnalysisDB).filter(AnalysisDB.investment_id == investment_id).update(
                {AnalysisDB.investment_name: db_investment.name}, synchronize_session="fetch"
            )

    db.refresh(db_investment)
    logger.info(f"Updated investment {investment_id}")
    return db_investment


def select_db_investment(db: Session, investment_id: int) -> InvestmentDB:
    """Make this the one selected investment of its calculator"""

    with atomic(db):
        db_investment = _lock_investment(db, investment_id)
        _select_exclusively(db, db_investment)

    db.refresh(db_investment)
    logger.info(f"Selected investment {investment_id} in calculator {db_investment.calculator_id}")
    return db_investment


def delete_db_investment(db: Session, investment_id: int) -> None:
    """
    Delete an investment option and the analyses that reference it.

    The owning calculator loses one investment option, and every calculator
    that held one of the removed analyses loses that many from analyses_count.
    """
    with atomic(db):
        db_investment = _lock_investment(db, investment_id)
        db_calculator = db.get(CalculatorDB, db_investment.calculator_id)

        analyses = db.query(AnalysisDB).filter(AnalysisDB.investment_id == investment_id).all()
        removed = Counter(analysis.calculator_id for analysis in analyses)
        for analysis in analyses:
            db.delete(analysis)
        db.flush()

        for calculator_id in sorted(removed):
            holder = db_calculator if calculator_id == db_calculator.id else lock_db_calculator(db, calculator_id)
            holder.analyses_count -= removed[calculator_id]

        db.delete(db_investment)
        db_calculator.investment_options_count -= 1

    logger.info(f"Deleted investment {investment_id} and {len(analyses)} dependent analyses")

from sqlalchemy.orm import Session
from typing import Optional, List, Dict, Tuple

from telem.db.core import (
    AnalysisDB, InvestmentDB, CalculatorDB, AnalysisType, NotFoundError, ConflictError, LOCK_ATTEMPTS, atomic,
)
from telem.models.analysis import AnalysisCreate, AnalysisUpdate
from telem.crud.crud_calculator import lock_db_calculator
from telem.services.analysis_results import generate_results
from telem.logging_config import get_logger

logger = get_logger(__name__)


# ===== DEFAULT-FLAG AND REFERENCE HELPERS =====

def _clear_default(db: Session, calculator_id: int, analysis_type: AnalysisType, exclude_id: Optional[int] = None) -> int:
    """Unset is_default on the other analyses of the same calculator and type"""
    query = db.query(AnalysisDB).filter(
        AnalysisDB.calculator_id == calculator_id,
        AnalysisDB.type == analysis_type,
        AnalysisDB.is_default.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(AnalysisDB.id != exclude_id)

    siblings = query.all()
    for sibling in siblings:
        sibling.is_default = False
    return len(siblings)


def _resolve_investment(db: Session, investment_id: Optional[int], calculator_id: int) -> Optional[InvestmentDB]:
    """
    The investment an analysis may link to, or None.

    An id that does not resolve to an investment of the same calculator is
    dropped with a warning rather than failing the write.
    """
    if investment_id is None:
        return None

    db_investment = db.query(InvestmentDB).filter(InvestmentDB.id == investment_id).first()
    if db_investment is None or db_investment.calculator_id != calculator_id:
        logger.warning(f"Investment {investment_id} not found in calculator {calculator_id}; analysis left unlinked")
        return None
    return db_investment


def _calculator_id_of(db: Session, analysis_id: int) -> int:
    calculator_id = db.query(AnalysisDB.calculator_id).filter(AnalysisDB.id == analysis_id).scalar()
    if calculator_id is None:
        raise NotFoundError(f"Analysis with id {analysis_id} not found")
    return calculator_id


def _load_analysis(db: Session, analysis_id: int) -> AnalysisDB:
    db_analysis = (
        db.query(AnalysisDB)
        .filter(AnalysisDB.id == analysis_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not db_analysis:
        raise NotFoundError(f"Analysis with id {analysis_id} not found")
    return db_analysis


def _lock_analysis(db: Session, analysis_id: int,
                   target_id: Optional[int] = None) -> Tuple[AnalysisDB, Dict[int, CalculatorDB]]:
    """
    Lock the analysis's calculator (and target_id, if given) in id order, then
    the analysis itself.

    The parent id is read before any lock is held, so a concurrent move can
    make it stale. The locked row is checked against it; on a mismatch the
    locks are released and the read is repeated.
    """
    for attempt in range(1, LOCK_ATTEMPTS + 1):
        current_id = _calculator_id_of(db, analysis_id)
        wanted = {current_id} if target_id is None else {current_id, target_id}
        calculators = {cid: lock_db_calculator(db, cid) for cid in sorted(wanted)}
        db_analysis = _load_analysis(db, analysis_id)

        if db_analysis.calculator_id == current_id:
            return db_analysis, calculators

        logger.debug(f"Analysis {analysis_id} moved to calculator {db_analysis.calculator_id} "
                     f"while locking {current_id} (attempt {attempt})")
        db.rollback()

    raise ConflictError(f"Analysis {analysis_id} is being moved concurrently, retry the request")


# ===== DATABASE OPERATIONS =====

def create_db_analysis(db: Session, analysis_data: AnalysisCreate) -> AnalysisDB:
    """Create an analysis with server-generated results and bump the calculator's analyses_count"""

    with atomic(db):
        db_calculator = lock_db_calculator(db, analysis_data.calculator_id)
        db_investment = _resolve_investment(db, analysis_data.investment_id, db_calculator.id)

        parameters, results = generate_results(
            db, analysis_data.type, analysis_data.parameters, db_calculator.id, db_investment
        )

        if analysis_data.is_default:
            _clear_default(db, db_calculator.id, analysis_data.type)

        db_analysis = AnalysisDB(
            calculator_id=db_calculator.id,
            investment_id=db_investment.id if db_investment else None,
            name=analysis_data.name,
            type=analysis_data.type,
            parameters=parameters,
            results=results,
            is_default=analysis_data.is_default,
            status=analysis_data.status,
            calculator_name=db_calculator.name,
            investment_name=db_investment.name if db_investment else None,
        )
        db.add(db_analysis)
        db_calculator.analyses_count += 1

    db.refresh(db_analysis)
    logger.info(f"Created {db_analysis.type.value} analysis {db_analysis.id} in calculator {db_analysis.calculator_id}")
    return db_analysis


def read_db_analysis(db: Session, analysis_id: int) -> Optional[AnalysisDB]:
    return db.query(AnalysisDB).filter(AnalysisDB.id == analysis_id).first()


def read_db_analyses(db: Session, calculator_id: Optional[int] = None, investment_id: Optional[int] = None,
                     user_id: Optional[int] = None, analysis_type: Optional[AnalysisType] = None,
                     skip: int = 0, limit: int = 100) -> List[AnalysisDB]:
    """Read analyses, optionally filtered by calculator, investment, owning user or type"""

    query = db.query(AnalysisDB)

    if calculator_id is not None:
        query = query.filter(AnalysisDB.calculator_id == calculator_id)
    if investment_id is not None:
        query = query.filter(AnalysisDB.investment_id == investment_id)
    if user_id is not None:
        query = query.join(CalculatorDB, AnalysisDB.calculator_id == CalculatorDB.id).filter(CalculatorDB.user_id == user_id)
    if analysis_type:
        query = query.filter(AnalysisDB.type == analysis_type)

    return query.order_by(AnalysisDB.updated_at.desc(), AnalysisDB.id.desc()).offset(skip).limit(limit).all()


def update_db_analysis(db: Session, analysis_id: int, analysis_updates: AnalysisUpdate) -> AnalysisDB:
    """
    Update an analysis.

    Moving it to another calculator moves one unit of analyses_count and
    re-resolves calculator_name. A changed (or moved) investment link
    re-resolves investment_name. Results are regenerated whenever the
    parameters, type or investment change. If the analysis ends up default
    in a (calculator, type) scope it was not default in before, the other
    defaults of that scope are cleared.
    """
    update_data = analysis_updates.model_dump(exclude_unset=True)

    with atomic(db):
        db_analysis, calculators = _lock_analysis(db, analysis_id, update_data.get('calculator_id'))
        current_id = db_analysis.calculator_id
        target_id = update_data.get('calculator_id', current_id)

        was_default = db_analysis.is_default
        old_type = db_analysis.type
        moved = target_id != current_id

        if moved:
            calculators[current_id].analyses_count -= 1
            calculators[target_id].analyses_count += 1
            db_analysis.calculator_id = target_id
            db_analysis.calculator_name = calculators[target_id].name
            logger.debug(f"Analysis {analysis_id} moved from calculator {current_id} to {target_id}")

        relink = moved or 'investment_id' in update_data
        if relink:
            db_investment = _resolve_investment(
                db, update_data.get('investment_id', db_analysis.investment_id), target_id
            )
            db_analysis.investment_id = db_investment.id if db_investment else None
            db_analysis.investment_name = db_investment.name if db_investment else None
        else:
            db_investment = db_analysis.investment

        for field in ('name', 'type', 'status', 'is_default'):
            if field in update_data:
                setattr(db_analysis, field, update_data[field])

        if relink or 'parameters' in update_data or db_analysis.type != old_type:
            db_analysis.parameters, db_analysis.results = generate_results(
                db,
                db_analysis.type,
                update_data.get('parameters', db_analysis.parameters),
                target_id,
                db_investment,
            )

        scope_changed = moved or db_analysis.type != old_type
        if db_analysis.is_default and (not was_default or scope_changed):
            _clear_default(db, target_id, db_analysis.type, exclude_id=analysis_id)

    db.refresh(db_analysis)
    logger.info(f"Updated analysis {analysis_id}")
    return db_analysis


def delete_db_analysis(db: Session, analysis_id: int) -> None:
    with atomic(db):
        db_analysis, calculators = _lock_analysis(db, analysis_id)
        calculator_id = db_analysis.calculator_id
        db.delete(db_analysis)
        calculators[calculator_id].analyses_count -= 1

    logger.info(f"Deleted analysis {analysis_id} from calculator {calculator_id}")

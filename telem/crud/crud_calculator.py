from sqlalchemy.orm import Session
from typing import Optional, List, Dict, Tuple

from telem import config
from telem.db.core import (
    CalculatorDB, InvestmentDB, AnalysisDB, UserDB, CalculatorStatus, NotFoundError, ConflictError, LOCK_ATTEMPTS, atomic,
)
from telem.models.calculator import CalculatorCreate, CalculatorUpdate
from telem.crud.crud_user import lock_db_user
from telem.crud.crud_setting import read_db_setting_decimal
from telem.logging_config import get_logger

logger = get_logger(__name__)


# ===== DATABASE OPERATIONS =====

def lock_db_calculator(db: Session, calculator_id: int) -> CalculatorDB:
    """
    Load a calculator under SELECT ... FOR UPDATE.

    Every change to a calculator's counters, or to the selected/default flags
    of its children, happens while this lock is held.
    """
    db_calculator = (
        db.query(CalculatorDB)
        .filter(CalculatorDB.id == calculator_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not db_calculator:
        raise NotFoundError(f"Calculator with id {calculator_id} not found")
    return db_calculator


def create_db_calculator(db: Session, calculator_data: CalculatorCreate) -> CalculatorDB:
    """Create a calculator for an investor and bump the owner's calculators_count"""

    with atomic(db):
        owner = lock_db_user(db, calculator_data.user_id)

        exchange_rate = calculator_data.exchange_rate
        if exchange_rate is None:
            exchange_rate = read_db_setting_decimal(db, "exchangeRate", config.DEFAULT_EXCHANGE_RATE)
        vat_rate = calculator_data.vat_rate
        if vat_rate is None:
            vat_rate = read_db_setting_decimal(db, "vatRate", config.DEFAULT_VAT_RATE)

        db_calculator = CalculatorDB(
            user_id=owner.id,
            name=calculator_data.name,
            self_equity=calculator_data.self_equity,
            has_mortgage=calculator_data.has_mortgage,
            has_property_in_israel=calculator_data.has_property_in_israel,
            investment_preference=calculator_data.investment_preference,
            exchange_rate=exchange_rate,
            vat_rate=vat_rate,
            status=calculator_data.status,
            investor_name=owner.name,
            investment_options_count=0,
            analyses_count=0,
        )
        db.add(db_calculator)
        owner.calculators_count += 1

    db.refresh(db_calculator)
    logger.info(f"Created calculator {db_calculator.id} for user {db_calculator.user_id}")
    return db_calculator


def read_db_calculator(db: Session, calculator_id: int) -> Optional[CalculatorDB]:
    return db.query(CalculatorDB).filter(CalculatorDB.id == calculator_id).first()


def resolve_calculator_owner(db: Session, calculator_id: int) -> int:
    """User id owning the calculator; the ownership root for investments and analyses"""
    user_id = db.query(CalculatorDB.user_id).filter(CalculatorDB.id == calculator_id).scalar()
    if user_id is None:
        raise NotFoundError(f"Calculator with id {calculator_id} not found")
    return user_id


def _lock_owned_calculator(db: Session, calculator_id: int,
                           new_owner_id: Optional[int] = None) -> Tuple[CalculatorDB, Dict[int, UserDB]]:
    """
    Lock the calculator's owner (and new_owner_id, if given) in id order, then
    the calculator.

    Users are always locked before their calculators. The owner id is read
    unlocked, so after the calculator lock it is checked again and the whole
    step repeats if ownership changed in between.
    """
    for attempt in range(1, LOCK_ATTEMPTS + 1):
        owner_id = resolve_calculator_owner(db, calculator_id)
        wanted = {owner_id} if new_owner_id is None else {owner_id, new_owner_id}
        users = {uid: lock_db_user(db, uid) for uid in sorted(wanted)}
        db_calculator = lock_db_calculator(db, calculator_id)

        if db_calculator.user_id == owner_id:
            return db_calculator, users

        logger.debug(f"Calculator {calculator_id} moved to user {db_calculator.user_id} "
                     f"while locking {owner_id} (attempt {attempt})")
        db.rollback()

    raise ConflictError(f"Calculator {calculator_id} is changing owner concurrently, retry the request")


def read_db_calculators(db: Session, user_id: Optional[int] = None, status: Optional[CalculatorStatus] = None,
                        skip: int = 0, limit: int = 100) -> List[CalculatorDB]:
    """Read calculators, newest first, optionally limited to one owner"""

    query = db.query(CalculatorDB)

    if user_id is not None:
        query = query.filter(CalculatorDB.user_id == user_id)
    if status:
        query = query.filter(CalculatorDB.status == status)

    return query.order_by(CalculatorDB.updated_at.desc(), CalculatorDB.id.desc()).offset(skip).limit(limit).all()


def read_db_recent_calculators(db: Session, user_id: Optional[int] = None, limit: int = 5) -> List[CalculatorDB]:
    return read_db_calculators(db, user_id=user_id, limit=limit)


def update_db_calculator(db: Session, calculator_id: int, calculator_updates: CalculatorUpdate) -> CalculatorDB:
    """
    Update a calculator.

    Moving it to another owner re-resolves investor_name and moves one unit
    of calculators_count between the two users. A rename is copied onto the
    calculator_name of its analyses. Child counters are never touched here.
    """
    update_data = calculator_updates.model_dump(exclude_unset=True)

    with atomic(db):
        new_user_id = update_data.pop('user_id', None)
        if new_user_id is None:
            db_calculator = lock_db_calculator(db, calculator_id)
        else:
            db_calculator, owners = _lock_owned_calculator(db, calculator_id, new_user_id)
        old_name = db_calculator.name

        if new_user_id is not None and new_user_id != db_calculator.user_id:
            owners[db_calculator.user_id].calculators_count -= 1
            owners[new_user_id].calculators_count += 1
            db_calculator.user_id = new_user_id
            db_calculator.investor_name = owners[new_user_id].name
            logger.debug(f"Calculator {calculator_id} moved to user {new_user_id}")

        for field, value in update_data.items():
            setattr(db_calculator, field, value)

        if db_calculator.name != old_name:
            db.query(AnalysisDB).filter(AnalysisDB.calculator_id == calculator_id).update(
                {AnalysisDB.calculator_name: db_calculator.name}, synchronize_session="fetch"
            )

    db.refresh(db_calculator)
    logger.info(f"Updated calculator {calculator_id}")
    return db_calculator


def duplicate_db_calculator(db: Session, calculator_id: int) -> CalculatorDB:
    """
    Copy a calculator and its investment options.

    The copy starts with zeroed counters and gains one investment option per
    copied row. Analyses stay with the source calculator.
    """
    with atomic(db):
        source, users = _lock_owned_calculator(db, calculator_id)
        owner = users[source.user_id]

        db_copy = CalculatorDB(
            user_id=source.user_id,
            name=f"{source.name}{config.CALCULATOR_COPY_SUFFIX}",
            self_equity=source.self_equity,
            has_mortgage=source.has_mortgage,
            has_property_in_israel=source.has_property_in_israel,
            investment_preference=source.investment_preference,
            exchange_rate=source.exchange_rate,
            vat_rate=source.vat_rate,
            status=source.status,
            investor_name=owner.name,
            investment_options_count=0,
            analyses_count=0,
        )
        db.add(db_copy)
        db.flush()

        source_investments = (
            db.query(InvestmentDB)
            .filter(InvestmentDB.calculator_id == source.id)
            .order_by(InvestmentDB.id)
            .all()
        )
        for investment in source_investments:
            db.add(InvestmentDB(
                calculator_id=db_copy.id,
                property_id=investment.property_id,
                name=investment.name,
                is_selected=investment.is_selected,
                price_override=investment.price_override,
                monthly_rent_override=investment.monthly_rent_override,
                has_furniture=investment.has_furniture,
                has_property_management=investment.has_property_management,
                has_real_estate_agent=investment.has_real_estate_agent,
            ))
            db_copy.investment_options_count += 1

        owner.calculators_count += 1

    db.refresh(db_copy)
    logger.info(f"Duplicated calculator {calculator_id} as {db_copy.id} with {db_copy.investment_options_count} investments")
    return db_copy


def delete_db_calculator(db: Session, calculator_id: int) -> None:
    """Delete a calculator with its analyses and investments, then decrement the owner's count"""

    with atomic(db):
        db_calculator, users = _lock_owned_calculator(db, calculator_id)
        owner = users[db_calculator.user_id]

        # Children first: analyses reference investments, investments reference the calculator
        analyses = db.query(AnalysisDB).filter(AnalysisDB.calculator_id == calculator_id).all()
        for analysis in analyses:
            db.delete(analysis)
        db.flush()

        investments = db.query(InvestmentDB).filter(InvestmentDB.calculator_id == calculator_id).all()
        for investment in investments:
            db.delete(investment)
        db.flush()

        db.delete(db_calculator)
        owner.calculators_count -= 1

    logger.info(
        f"Deleted calculator {calculator_id} with {len(investments)} investments and {len(analyses)} analyses"
    )

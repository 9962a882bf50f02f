from sqlalchemy.orm import Session
from typing import Optional, List

from telem.db.core import PropertyDB, InvestmentDB, NotFoundError, ConflictError, atomic
from telem.models.property import PropertyCreate, PropertyUpdate
from telem.logging_config import get_logger

logger = get_logger(__name__)


def create_db_property(db: Session, property_data: PropertyCreate) -> PropertyDB:
    db_property = PropertyDB(**property_data.model_dump())

    with atomic(db):
        db.add(db_property)

    db.refresh(db_property)
    logger.info(f"Created property {db_property.id} ({db_property.name})")
    return db_property


def read_db_property(db: Session, property_id: int) -> Optional[PropertyDB]:
    return db.query(PropertyDB).filter(PropertyDB.id == property_id).first()


def read_db_properties(db: Session, location: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[PropertyDB]:
    query = db.query(PropertyDB)
    if location:
        query = query.filter(PropertyDB.location.ilike(f"%{location}%"))
    return query.order_by(PropertyDB.name).offset(skip).limit(limit).all()


def update_db_property(db: Session, property_id: int, property_updates: PropertyUpdate) -> PropertyDB:
    update_data = property_updates.model_dump(exclude_unset=True)

    with atomic(db):
        db_property = db.query(PropertyDB).filter(PropertyDB.id == property_id).with_for_update().first()
        if not db_property:
            raise NotFoundError(f"Property with id {property_id} not found")

        for field, value in update_data.items():
            setattr(db_property, field, value)

    db.refresh(db_property)
    logger.info(f"Updated property {property_id}")
    return db_property


def delete_db_property(db: Session, property_id: int) -> None:
    """Delete a catalog property. Refused while any investment option still references it."""

    with atomic(db):
        db_property = db.query(PropertyDB).filter(PropertyDB.id == property_id).with_for_update().first()
        if not db_property:
            raise NotFoundError(f"Property with id {property_id} not found")

        references = db.query(InvestmentDB).filter(InvestmentDB.property_id == property_id).count()
        if references:
            logger.warning(f"Refused to delete property {property_id}: referenced by {references} investments")
            raise ConflictError(f"Property {property_id} is referenced by {references} investment option(s)")

        db.delete(db_property)

    logger.info(f"Deleted property {property_id}")

from sqlalchemy.orm import Session
from typing import Optional, List
from decimal import Decimal, InvalidOperation

from telem.db.core import SettingDB, atomic
from telem.logging_config import get_logger

logger = get_logger(__name__)


def read_db_settings(db: Session) -> List[SettingDB]:
    return db.query(SettingDB).order_by(SettingDB.key).all()


def read_db_setting(db: Session, key: str) -> Optional[SettingDB]:
    return db.query(SettingDB).filter(SettingDB.key == key).first()


def read_db_setting_decimal(db: Session, key: str, default: Decimal) -> Decimal:
    """Numeric value of a setting, or the default when it is missing or not a number"""
    db_setting = read_db_setting(db, key)
    if db_setting is None:
        return default
    try:
        return Decimal(db_setting.value)
    except InvalidOperation:
        logger.warning(f"Setting {key}={db_setting.value!r} is not numeric, using {default}")
        return default


def upsert_db_setting(db: Session, key: str, value: str, description: Optional[str] = None) -> SettingDB:
    """Update the setting when the key exists, insert it otherwise"""

    with atomic(db):
        db_setting = (
            db.query(SettingDB)
            .filter(SettingDB.key == key)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if db_setting:
            db_setting.value = value
            if description is not None:
                db_setting.description = description
        else:
            db_setting = SettingDB(key=key, value=value, description=description)
            db.add(db_setting)

    db.refresh(db_setting)
    logger.info(f"Setting {key} = {value}")
    return db_setting

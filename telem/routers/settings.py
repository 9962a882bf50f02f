from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from telem.auth import get_current_principal
from telem.authz import Principal, Resource, Action, authorize
from telem.crud import crud_setting
from telem.db.core import get_db
from telem.models import setting as setting_models

router = APIRouter(
    prefix="/settings",
    tags=["settings"],
)


@router.get("", response_model=List[setting_models.SettingResponse])
def read_settings(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    authorize(principal, Resource.SETTING, Action.LIST)
    return crud_setting.read_db_settings(db)


@router.get("/{key}", response_model=setting_models.SettingResponse)
def read_setting(
    key: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    authorize(principal, Resource.SETTING, Action.READ)
    db_setting = crud_setting.read_db_setting(db, key)
    if db_setting is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Setting not found")
    return db_setting


@router.put("/{key}", response_model=setting_models.SettingResponse)
def upsert_setting(
    key: str,
    setting: setting_models.SettingUpsert,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Set a value, creating the key if it does not exist yet.
    """
    authorize(principal, Resource.SETTING, Action.UPDATE)
    return crud_setting.upsert_db_setting(db, key, setting.value, setting.description)

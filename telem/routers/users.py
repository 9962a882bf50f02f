from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List

from telem.auth import get_current_principal
from telem.authz import Principal, Resource, Action, authorize
from telem.crud import crud_user
from telem.db.core import get_db, UserRole
from telem.models import user as user_models

router = APIRouter(
    tags=["users"],
)


@router.get("/investors", response_model=List[user_models.UserResponse])
def read_investors(
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    List investor accounts. Advisor only.
    """
    authorize(principal, Resource.USER, Action.LIST)
    return crud_user.read_db_users(db, role=UserRole.INVESTOR, skip=skip, limit=limit)


@router.get("/users/{user_id}", response_model=user_models.UserResponse)
def read_user(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    authorize(principal, Resource.USER, Action.READ, owner_id=user_id)
    db_user = crud_user.read_db_user(db, user_id=user_id)
    if db_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return db_user


@router.patch("/users/{user_id}", response_model=user_models.UserResponse)
def update_user(
    user_id: int,
    user: user_models.UserUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Update a user. Investors may only change their own name, email, phone and password.
    """
    fields = user.model_dump(exclude_unset=True, by_alias=True).keys()
    authorize(principal, Resource.USER, Action.UPDATE, owner_id=user_id, fields=fields)
    return crud_user.update_db_user(db, user_id, user)

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional

from telem.auth import create_access_token, get_current_principal, get_optional_principal
from telem.authz import Principal, Resource, Action, ForbiddenError, authorize
from telem.crud import crud_user
from telem.db.core import get_db, UserRole
from telem.models import user as user_models
from telem.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    tags=["auth"],
)


@router.post("/register/advisor", response_model=user_models.UserResponse, status_code=status.HTTP_201_CREATED)
def register_advisor(
    user: user_models.UserCreate,
    db: Session = Depends(get_db),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    """
    Create an advisor account. Open until the first advisor exists, advisor-only afterwards.
    """
    if crud_user.count_db_users(db, role=UserRole.ADVISOR) > 0:
        if principal is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
        if not principal.is_advisor:
            raise ForbiddenError("Forbidden: advisor role required")

    return crud_user.create_db_user(db, user, role=UserRole.ADVISOR)


@router.post("/register", response_model=user_models.UserResponse, status_code=status.HTTP_201_CREATED)
def register_investor(
    user: user_models.UserCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    An advisor creates an investor account.
    """
    authorize(principal, Resource.USER, Action.CREATE)
    return crud_user.create_db_user(db, user, role=UserRole.INVESTOR)


@router.post("/login", response_model=user_models.TokenResponse)
def login(
    credentials: user_models.UserLogin,
    db: Session = Depends(get_db),
):
    db_user = crud_user.authenticate_user(db, credentials.username, credentials.password)
    if db_user is None:
        logger.warning(f"Failed login for {credentials.username}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    return {"access_token": create_access_token(db_user), "token_type": "bearer", "user": db_user}


@router.get("/user", response_model=user_models.UserResponse)
def read_current_user(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    db_user = crud_user.read_db_user(db, user_id=principal.user_id)
    if db_user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return db_user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(principal: Principal = Depends(get_current_principal)):
    """
    Tokens are stateless; the client discards its copy. Kept so clients can end a session uniformly.
    """
    logger.info(f"User {principal.user_id} logged out")

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional

from telem.auth import get_current_principal
from telem.authz import Principal, Resource, Action, authorize
from telem.crud import crud_calculator
from telem.db.core import get_db, CalculatorStatus
from telem.models import calculator as calculator_models

router = APIRouter(
    prefix="/calculators",
    tags=["calculators"],
)


@router.get("", response_model=List[calculator_models.CalculatorResponse])
def read_calculators(
    user_id: Optional[int] = Query(None, alias="userId"),
    status_filter: Optional[CalculatorStatus] = Query(None, alias="status"),
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Retrieve calculators, newest first. Investors only ever see their own.
    """
    if user_id is None and not principal.is_advisor:
        user_id = principal.user_id
    if user_id is not None:
        authorize(principal, Resource.CALCULATOR, Action.LIST, owner_id=user_id)

    return crud_calculator.read_db_calculators(db, user_id=user_id, status=status_filter, skip=skip, limit=limit)


@router.get("/recent", response_model=List[calculator_models.CalculatorResponse])
def read_recent_calculators(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    user_id = None if principal.is_advisor else principal.user_id
    return crud_calculator.read_db_recent_calculators(db, user_id=user_id, limit=limit)


@router.get("/{calculator_id}", response_model=calculator_models.CalculatorResponse)
def read_calculator(
    calculator_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    db_calculator = crud_calculator.read_db_calculator(db, calculator_id)
    if db_calculator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Calculator not found")

    authorize(principal, Resource.CALCULATOR, Action.READ, owner_id=db_calculator.user_id)
    return db_calculator


@router.post("", response_model=calculator_models.CalculatorResponse, status_code=status.HTTP_201_CREATED)
def create_calculator(
    calculator: calculator_models.CalculatorCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Create a calculator. Advisors may create one for any user, investors only for themselves.
    """
    authorize(principal, Resource.CALCULATOR, Action.CREATE, owner_id=calculator.user_id)
    return crud_calculator.create_db_calculator(db, calculator)


@router.patch("/{calculator_id}", response_model=calculator_models.CalculatorResponse)
def update_calculator(
    calculator_id: int,
    calculator: calculator_models.CalculatorUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Update a calculator. Investors may only change their financial assumptions.
    """
    owner_id = crud_calculator.resolve_calculator_owner(db, calculator_id)
    fields = calculator.model_dump(exclude_unset=True, by_alias=True).keys()
    authorize(principal, Resource.CALCULATOR, Action.UPDATE, owner_id=owner_id, fields=fields)

    return crud_calculator.update_db_calculator(db, calculator_id, calculator)


@router.post("/{calculator_id}/duplicate", response_model=calculator_models.CalculatorResponse,
             status_code=status.HTTP_201_CREATED)
def duplicate_calculator(
    calculator_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Copy a calculator together with its investment options (analyses are not copied).
    """
    owner_id = crud_calculator.resolve_calculator_owner(db, calculator_id)
    authorize(principal, Resource.CALCULATOR, Action.DUPLICATE, owner_id=owner_id)

    return crud_calculator.duplicate_db_calculator(db, calculator_id)


@router.delete("/{calculator_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_calculator(
    calculator_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Delete a calculator with all its investments and analyses. Advisor only.
    """
    owner_id = crud_calculator.resolve_calculator_owner(db, calculator_id)
    authorize(principal, Resource.CALCULATOR, Action.DELETE, owner_id=owner_id)

    crud_calculator.delete_db_calculator(db, calculator_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

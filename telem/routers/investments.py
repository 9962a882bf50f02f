from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session
from typing import List

from telem.auth import get_current_principal
from telem.authz import Principal, Resource, Action, authorize
from telem.crud import crud_investment, crud_calculator
from telem.db.core import get_db, InvestmentDB
from telem.models import investment as investment_models

router = APIRouter(
    prefix="/investments",
    tags=["investments"],
)


def _get_investment(db: Session, investment_id: int) -> InvestmentDB:
    db_investment = crud_investment.read_db_investment(db, investment_id)
    if db_investment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Investment not found")
    return db_investment


@router.get("", response_model=List[investment_models.InvestmentResponse])
def read_investments(
    calculator_id: int = Query(..., alias="calculatorId"),
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Retrieve the investment options of one calculator.
    """
    owner_id = crud_calculator.resolve_calculator_owner(db, calculator_id)
    authorize(principal, Resource.INVESTMENT, Action.LIST, owner_id=owner_id)

    return crud_investment.read_db_investments(db, calculator_id, skip=skip, limit=limit)


@router.get("/{investment_id}", response_model=investment_models.InvestmentResponse)
def read_investment(
    investment_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    db_investment = _get_investment(db, investment_id)
    authorize(principal, Resource.INVESTMENT, Action.READ, owner_id=db_investment.calculator.user_id)
    return db_investment


@router.post("", response_model=investment_models.InvestmentResponse, status_code=status.HTTP_201_CREATED)
def create_investment(
    investment: investment_models.InvestmentCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Add an investment option to a calculator. If it is marked selected, any previously selected option is cleared.
    """
    owner_id = crud_calculator.resolve_calculator_owner(db, investment.calculator_id)
    authorize(principal, Resource.INVESTMENT, Action.CREATE, owner_id=owner_id)

    return crud_investment.create_db_investment(db, investment)


@router.patch("/{investment_id}", response_model=investment_models.InvestmentResponse)
def update_investment(
    investment_id: int,
    investment: investment_models.InvestmentUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Update an investment option. Investors may only toggle the feature flags.
    """
    db_investment = _get_investment(db, investment_id)
    fields = investment.model_dump(exclude_unset=True, by_alias=True).keys()
    authorize(principal, Resource.INVESTMENT, Action.UPDATE, owner_id=db_investment.calculator.user_id, fields=fields)

    return crud_investment.update_db_investment(db, investment_id, investment)


@router.post("/{investment_id}/select", response_model=investment_models.InvestmentResponse)
def select_investment(
    investment_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Make this the selected investment option of its calculator.
    """
    db_investment = _get_investment(db, investment_id)
    authorize(principal, Resource.INVESTMENT, Action.UPDATE, owner_id=db_investment.calculator.user_id,
              fields=["isSelected"])

    return crud_investment.select_db_investment(db, investment_id)


@router.delete("/{investment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_investment(
    investment_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Delete an investment option and every analysis linked to it.
    """
    db_investment = _get_investment(db, investment_id)
    authorize(principal, Resource.INVESTMENT, Action.DELETE, owner_id=db_investment.calculator.user_id)

    crud_investment.delete_db_investment(db, investment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

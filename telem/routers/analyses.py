from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional

from telem.auth import get_current_principal
from telem.authz import Principal, Resource, Action, authorize
from telem.crud import crud_analysis, crud_calculator
from telem.db.core import get_db, AnalysisDB, AnalysisType
from telem.models import analysis as analysis_models

router = APIRouter(
    prefix="/analyses",
    tags=["analyses"],
)


def _get_analysis(db: Session, analysis_id: int) -> AnalysisDB:
    db_analysis = crud_analysis.read_db_analysis(db, analysis_id)
    if db_analysis is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found")
    return db_analysis


@router.get("", response_model=List[analysis_models.AnalysisResponse])
def read_analyses(
    calculator_id: Optional[int] = Query(None, alias="calculatorId"),
    investment_id: Optional[int] = Query(None, alias="investmentId"),
    analysis_type: Optional[AnalysisType] = Query(None, alias="type"),
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Retrieve analyses filtered by calculator and/or investment.
    Without a calculator filter investors get the analyses of all their own calculators.
    """
    user_id = None
    if calculator_id is not None:
        owner_id = crud_calculator.resolve_calculator_owner(db, calculator_id)
        authorize(principal, Resource.ANALYSIS, Action.LIST, owner_id=owner_id)
    elif not principal.is_advisor:
        user_id = principal.user_id

    return crud_analysis.read_db_analyses(
        db,
        calculator_id=calculator_id,
        investment_id=investment_id,
        user_id=user_id,
        analysis_type=analysis_type,
        skip=skip,
        limit=limit,
    )


@router.get("/{analysis_id}", response_model=analysis_models.AnalysisResponse)
def read_analysis(
    analysis_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    db_analysis = _get_analysis(db, analysis_id)
    authorize(principal, Resource.ANALYSIS, Action.READ, owner_id=db_analysis.calculator.user_id)
    return db_analysis


@router.post("", response_model=analysis_models.AnalysisResponse, status_code=status.HTTP_201_CREATED)
def create_analysis(
    analysis: analysis_models.AnalysisCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Create an analysis. Results are computed from the parameters on the server.
    """
    owner_id = crud_calculator.resolve_calculator_owner(db, analysis.calculator_id)
    authorize(principal, Resource.ANALYSIS, Action.CREATE, owner_id=owner_id)

    return crud_analysis.create_db_analysis(db, analysis)


@router.patch("/{analysis_id}", response_model=analysis_models.AnalysisResponse)
def update_analysis(
    analysis_id: int,
    analysis: analysis_models.AnalysisUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    db_analysis = _get_analysis(db, analysis_id)
    fields = analysis.model_dump(exclude_unset=True, by_alias=True).keys()
    authorize(principal, Resource.ANALYSIS, Action.UPDATE, owner_id=db_analysis.calculator.user_id, fields=fields)

    # Moving an analysis needs rights on the destination too
    if analysis.calculator_id is not None and analysis.calculator_id != db_analysis.calculator_id:
        target_owner = crud_calculator.resolve_calculator_owner(db, analysis.calculator_id)
        authorize(principal, Resource.ANALYSIS, Action.UPDATE, owner_id=target_owner, fields=fields)

    return crud_analysis.update_db_analysis(db, analysis_id, analysis)


@router.delete("/{analysis_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_analysis(
    analysis_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    db_analysis = _get_analysis(db, analysis_id)
    authorize(principal, Resource.ANALYSIS, Action.DELETE, owner_id=db_analysis.calculator.user_id)

    crud_analysis.delete_db_analysis(db, analysis_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

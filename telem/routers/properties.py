from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional

from telem.auth import get_current_principal
from telem.authz import Principal, Resource, Action, authorize
from telem.crud import crud_property
from telem.db.core import get_db
from telem.models import property as property_models

router = APIRouter(
    prefix="/properties",
    tags=["properties"],
)


@router.get("", response_model=List[property_models.PropertyResponse])
def read_properties(
    location: Optional[str] = None,
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Retrieve the property catalog, optionally filtered by location.
    """
    authorize(principal, Resource.PROPERTY, Action.LIST)
    return crud_property.read_db_properties(db, location=location, skip=skip, limit=limit)


@router.get("/{property_id}", response_model=property_models.PropertyResponse)
def read_property(
    property_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    authorize(principal, Resource.PROPERTY, Action.READ)
    db_property = crud_property.read_db_property(db, property_id)
    if db_property is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return db_property


@router.post("", response_model=property_models.PropertyResponse, status_code=status.HTTP_201_CREATED)
def create_property(
    prop: property_models.PropertyCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    authorize(principal, Resource.PROPERTY, Action.CREATE)
    return crud_property.create_db_property(db, prop)


@router.patch("/{property_id}", response_model=property_models.PropertyResponse)
def update_property(
    property_id: int,
    prop: property_models.PropertyUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    authorize(principal, Resource.PROPERTY, Action.UPDATE)
    return crud_property.update_db_property(db, property_id, prop)


@router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_property(
    property_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Delete a property. Refused with 409 while any investment option references it.
    """
    authorize(principal, Resource.PROPERTY, Action.DELETE)
    crud_property.delete_db_property(db, property_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

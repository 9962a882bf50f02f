from pydantic import Field
from typing import Optional
from datetime import datetime, date
from decimal import Decimal

from telem.models.base import ApiModel, PatchModel


# ===== PROPERTY PYDANTIC MODELS =====

class PropertyBase(ApiModel):
    name: str = Field(..., min_length=1, max_length=255)
    price_without_vat: Decimal = Field(..., gt=0, alias="priceWithoutVAT")
    monthly_rent: Decimal = Field(..., ge=0)
    guaranteed_rent: bool = False
    delivery_date: date
    bedrooms: int = Field(..., ge=0)
    location: str = Field(..., min_length=1, max_length=255)


class PropertyCreate(PropertyBase):
    pass


class PropertyUpdate(PatchModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    price_without_vat: Optional[Decimal] = Field(None, gt=0, alias="priceWithoutVAT")
    monthly_rent: Optional[Decimal] = Field(None, ge=0)
    guaranteed_rent: Optional[bool] = None
    delivery_date: Optional[date] = None
    bedrooms: Optional[int] = Field(None, ge=0)
    location: Optional[str] = Field(None, min_length=1, max_length=255)


class PropertyResponse(PropertyBase):
    id: int
    created_at: datetime
    updated_at: datetime

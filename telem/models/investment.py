from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

from telem.models.base import ApiModel, PatchModel


# ===== INVESTMENT OPTION PYDANTIC MODELS =====

class InvestmentBase(ApiModel):
    property_id: int = Field(..., description="Catalog property this option refers to")
    price_override: Optional[Decimal] = Field(None, gt=0, description="Null means use the property's price")
    monthly_rent_override: Optional[Decimal] = Field(None, ge=0, description="Null means use the property's rent")
    is_selected: bool = False
    has_furniture: bool = False
    has_property_management: bool = False
    has_real_estate_agent: bool = False

    @field_validator('price_override', 'monthly_rent_override')
    @classmethod
    def round_decimal_fields(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None:
            return round(v, 2)
        return v


class InvestmentCreate(InvestmentBase):
    calculator_id: int
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="Defaults to the property's name")


class InvestmentUpdate(PatchModel):
    nullable_fields = frozenset({"price_override", "monthly_rent_override"})

    property_id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    price_override: Optional[Decimal] = Field(None, gt=0)
    monthly_rent_override: Optional[Decimal] = Field(None, ge=0)
    is_selected: Optional[bool] = None
    has_furniture: Optional[bool] = None
    has_property_management: Optional[bool] = None
    has_real_estate_agent: Optional[bool] = None

    @field_validator('price_override', 'monthly_rent_override')
    @classmethod
    def round_decimal_fields(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None:
            return round(v, 2)
        return v


class InvestmentResponse(InvestmentBase):
    id: int
    calculator_id: int
    name: str
    effective_price: Optional[Decimal]
    effective_monthly_rent: Optional[Decimal]
    created_at: datetime
    updated_at: datetime

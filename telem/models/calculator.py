from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

from telem.db.core import CalculatorStatus
from telem.models.base import ApiModel, PatchModel


# ===== CALCULATOR PYDANTIC MODELS =====

class CalculatorBase(ApiModel):
    name: str = Field(..., min_length=1, max_length=255, description="Scenario name")
    self_equity: Decimal = Field(default=Decimal("0"), ge=0, description="Investor's own equity")
    has_mortgage: bool = False
    has_property_in_israel: bool = False
    investment_preference: str = Field(default="positive_cashflow", max_length=50)
    status: CalculatorStatus = CalculatorStatus.DRAFT

    @field_validator('self_equity')
    @classmethod
    def round_equity(cls, v: Decimal) -> Decimal:
        return round(v, 2)


class CalculatorCreate(CalculatorBase):
    user_id: int = Field(..., description="The investor who owns this calculator")
    exchange_rate: Optional[Decimal] = Field(None, gt=0, description="Defaults to the exchangeRate setting")
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Percent; defaults to the vatRate setting")


class CalculatorUpdate(PatchModel):
    user_id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    self_equity: Optional[Decimal] = Field(None, ge=0)
    has_mortgage: Optional[bool] = None
    has_property_in_israel: Optional[bool] = None
    investment_preference: Optional[str] = Field(None, max_length=50)
    exchange_rate: Optional[Decimal] = Field(None, gt=0)
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    status: Optional[CalculatorStatus] = None


class CalculatorResponse(CalculatorBase):
    id: int
    user_id: int
    exchange_rate: Decimal
    vat_rate: Decimal
    investor_name: str
    investment_options_count: int
    analyses_count: int
    created_at: datetime
    updated_at: datetime

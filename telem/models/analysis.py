from pydantic import Field, field_validator
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime

from telem.db.core import AnalysisType, AnalysisStatus
from telem.models.base import ApiModel, PatchModel


# ===== ANALYSIS PYDANTIC MODELS =====

class AnalysisCreate(ApiModel):
    """Results are generated server-side from the parameters, never accepted from the client."""
    calculator_id: int
    investment_id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=255)
    type: AnalysisType
    parameters: Dict[str, Any] = Field(default_factory=dict)
    is_default: bool = False
    status: AnalysisStatus = AnalysisStatus.ACTIVE


class AnalysisUpdate(PatchModel):
    nullable_fields = frozenset({"investment_id"})

    calculator_id: Optional[int] = None
    investment_id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[AnalysisType] = None
    parameters: Optional[Dict[str, Any]] = None
    is_default: Optional[bool] = None
    status: Optional[AnalysisStatus] = None


class AnalysisResponse(ApiModel):
    id: int
    calculator_id: int
    investment_id: Optional[int]
    name: str
    type: AnalysisType
    parameters: Dict[str, Any]
    results: Dict[str, Any]
    is_default: bool
    status: AnalysisStatus
    calculator_name: str
    investment_name: Optional[str]
    created_at: datetime
    updated_at: datetime


# ===== ANALYSIS PARAMETER SCHEMAS (one per analysis type) =====

class MortgageParameters(ApiModel):
    loan_amount: float = Field(..., gt=0)
    interest_rate: float = Field(..., gt=0, le=100, description="Annual rate in percent")
    loan_term: int = Field(..., ge=1, le=50, description="Years")
    loan_type: Literal["israel", "cyprus"] = "israel"


class CashflowParameters(ApiModel):
    period: int = Field(..., ge=1, le=50, description="Projection length in years")
    initial_investment: float = Field(..., gt=0)
    monthly_rent: float = Field(..., gt=0)
    mortgage_payment: float = Field(0, ge=0)
    management_fee: float = Field(0, ge=0)
    property_tax: float = Field(0, ge=0)
    insurance: float = Field(0, ge=0)
    maintenance: float = Field(0, ge=0)
    other_expenses: float = Field(0, ge=0)
    annual_appreciation: float = Field(0, description="Percent per year")
    annual_rent_increase: float = Field(0, description="Percent per year")
    property_value: Optional[float] = Field(None, gt=0)


class SensitivityParameters(ApiModel):
    base_parameter: Literal["price", "rent", "interestRate", "exchangeRate", "vacancyRate"]
    base_value: float = Field(..., gt=0)
    range_percentage: float = Field(20, gt=0, le=100)
    steps: int = Field(5, ge=2, le=50)
    affected_parameter: Literal["cashflow", "roi", "mortgagePayment", "yield"]

    # Scenario the sweep is applied to; unset values come from the linked investment
    purchase_price: Optional[float] = Field(None, gt=0)
    monthly_rent: Optional[float] = Field(None, ge=0)
    loan_amount: float = Field(0, ge=0)
    interest_rate: float = Field(0, ge=0, le=100)
    loan_term: int = Field(25, ge=1, le=50)
    monthly_expenses: float = Field(0, ge=0)
    vacancy_rate: float = Field(0, ge=0, le=100)
    exchange_rate: float = Field(1, gt=0)
    initial_investment: Optional[float] = Field(None, gt=0)


ComparisonMetric = Literal["price", "monthlyRent", "yield", "cashflow", "roi", "mortgagePayment"]


class ComparisonParameters(ApiModel):
    investment_ids: List[int] = Field(..., min_length=2)
    parameters: List[ComparisonMetric] = Field(..., min_length=1)
    interest_rate: float = Field(0, ge=0, le=100)
    loan_term: int = Field(25, ge=1, le=50)

    @field_validator('investment_ids')
    @classmethod
    def unique_ids(cls, v: List[int]) -> List[int]:
        if len(set(v)) != len(v):
            raise ValueError('investmentIds must not repeat')
        return v


class YieldParameters(ApiModel):
    purchase_price: float = Field(..., gt=0)
    closing_costs: float = Field(0, ge=0)
    renovation_costs: float = Field(0, ge=0)
    monthly_rent: float = Field(..., gt=0)
    vacancy_rate: float = Field(0, ge=0, le=100)
    expense_rate: float = Field(0, ge=0, le=100)

"""
Server-side generation of analysis results.

Each analysis type has a parameter schema in telem.models.analysis. The
parameters are validated (pydantic.ValidationError propagates to the
transport as a 400), normalized to their camelCase form, and mapped through
the formulas in telem.services.financial. Results are never taken from the
client.
"""
from typing import Any, Dict, Optional, Tuple
from sqlalchemy.orm import Session

from telem.db.core import AnalysisType, CalculatorDB, InvestmentDB, NotFoundError
from telem.models.analysis import (
    MortgageParameters,
    CashflowParameters,
    SensitivityParameters,
    ComparisonParameters,
    YieldParameters,
)
from telem.services import financial
from telem.logging_config import get_logger

logger = get_logger(__name__)


PARAMETER_SCHEMAS = {
    AnalysisType.MORTGAGE: MortgageParameters,
    AnalysisType.CASHFLOW: CashflowParameters,
    AnalysisType.SENSITIVITY: SensitivityParameters,
    AnalysisType.COMPARISON: ComparisonParameters,
    AnalysisType.YIELD: YieldParameters,
}


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None


# ===== PER-TYPE GENERATORS =====

def mortgage_results(params: MortgageParameters, investment: Optional[InvestmentDB] = None) -> Dict[str, Any]:
    monthly_payment = financial.mortgage_payment(params.loan_amount, params.interest_rate, params.loan_term)
    total_payments = monthly_payment * params.loan_term * 12

    ltv = None
    if investment is not None and investment.effective_price is not None:
        ltv = financial.loan_to_value(params.loan_amount, float(investment.effective_price))

    return {
        "monthlyPayment": monthly_payment,
        "totalPayments": total_payments,
        "totalInterest": financial.total_interest(params.loan_amount, params.interest_rate, params.loan_term),
        "loanType": params.loan_type,
        "ltv": ltv,
        "amortizationSchedule": financial.amortization_schedule(
            params.loan_amount, params.interest_rate, params.loan_term
        ),
    }


def cashflow_results(params: CashflowParameters) -> Dict[str, Any]:
    fixed_costs = params.property_tax + params.insurance + params.maintenance + params.other_expenses
    monthly_cashflow = financial.cash_flow(params.monthly_rent, params.mortgage_payment, params.management_fee, fixed_costs)
    annual_cashflow = monthly_cashflow * 12

    projection = []
    rent = params.monthly_rent
    value = params.property_value
    cumulative = 0.0
    for year in range(1, params.period + 1):
        # Costs stay flat; rent and value grow once per year after the first
        if year > 1:
            rent *= 1 + params.annual_rent_increase / 100
            if value is not None:
                value *= 1 + params.annual_appreciation / 100
        year_cashflow = financial.cash_flow(rent, params.mortgage_payment, params.management_fee, fixed_costs) * 12
        cumulative += year_cashflow
        projection.append({
            "year": year,
            "monthlyRent": rent,
            "annualCashflow": year_cashflow,
            "cumulativeCashflow": cumulative,
            "propertyValue": value,
        })

    return {
        "monthlyCashflow": monthly_cashflow,
        "annualCashflow": annual_cashflow,
        "roi": financial.roi(annual_cashflow, params.initial_investment),
        "paybackPeriod": financial.payback_period(params.initial_investment, annual_cashflow),
        "cashflowProjection": projection,
    }


_SWEEP_KEYS = {
    "price": "price",
    "rent": "rent",
    "interestRate": "interest_rate",
    "exchangeRate": "exchange_rate",
    "vacancyRate": "vacancy_rate",
}


def _scenario_metric(scenario: Dict[str, float], metric: str) -> float:
    """
    Evaluate one metric of a sensitivity scenario.

    Monetary inputs are in the property's currency. cashflow and
    mortgagePayment are reported in local currency (times exchange_rate);
    roi and yield are ratios and do not depend on it.
    """
    effective_rent = scenario["rent"] * (1 - scenario["vacancy_rate"] / 100)
    payment = financial.mortgage_payment(scenario["loan_amount"], scenario["interest_rate"], scenario["loan_term"])
    monthly = financial.cash_flow(effective_rent, payment, scenario["monthly_expenses"], 0)

    if metric == "mortgagePayment":
        return financial.price_in_local_currency(payment, scenario["exchange_rate"])
    if metric == "cashflow":
        return financial.price_in_local_currency(monthly, scenario["exchange_rate"])
    if metric == "roi":
        initial = scenario["initial_investment"] or scenario["price"]
        return financial.roi(monthly * 12, initial)
    return financial.annual_yield(scenario["price"], effective_rent * 12)


def sensitivity_results(params: SensitivityParameters, investment: Optional[InvestmentDB] = None) -> Dict[str, Any]:
    price = params.purchase_price
    rent = params.monthly_rent
    if investment is not None:
        if price is None:
            price = _as_float(investment.effective_price)
        if rent is None:
            rent = _as_float(investment.effective_monthly_rent)

    scenario = {
        "price": price or 0.0,
        "rent": rent or 0.0,
        "loan_amount": params.loan_amount,
        "interest_rate": params.interest_rate,
        "loan_term": params.loan_term,
        "monthly_expenses": params.monthly_expenses,
        "vacancy_rate": params.vacancy_rate,
        "exchange_rate": params.exchange_rate,
        "initial_investment": params.initial_investment,
    }
    swept_key = _SWEEP_KEYS[params.base_parameter]

    points = []
    for point in financial.sensitivity_sweep(params.base_value, params.range_percentage, params.steps):
        trial = dict(scenario, **{swept_key: point["value"]})
        points.append({
            "parameter": params.base_parameter,
            "percentage": point["percentage"],
            "value": point["value"],
            "result": _scenario_metric(trial, params.affected_parameter),
        })

    return {
        "sensitivityData": points,
        "baseParameter": params.base_parameter,
        "affectedParameter": params.affected_parameter,
        "baseValue": params.base_value,
        "baseResult": _scenario_metric(dict(scenario, **{swept_key: params.base_value}), params.affected_parameter),
        "rangePercentage": params.range_percentage,
        "steps": params.steps,
    }


def comparison_results(db: Session, params: ComparisonParameters, calculator_id: int) -> Dict[str, Any]:
    investments = {
        investment.id: investment
        for investment in db.query(InvestmentDB).filter(
            InvestmentDB.id.in_(params.investment_ids),
            InvestmentDB.calculator_id == calculator_id,
        )
    }
    missing = [investment_id for investment_id in params.investment_ids if investment_id not in investments]
    if missing:
        raise NotFoundError(f"Investments {missing} not found in calculator {calculator_id}")

    calculator = db.get(CalculatorDB, calculator_id)
    equity = float(calculator.self_equity)

    rows = []
    for investment_id in params.investment_ids:
        investment = investments[investment_id]
        price = _as_float(investment.effective_price) or 0.0
        rent = _as_float(investment.effective_monthly_rent) or 0.0
        loan = max(price - equity, 0.0) if calculator.has_mortgage else 0.0
        payment = financial.mortgage_payment(loan, params.interest_rate, params.loan_term)
        monthly = financial.cash_flow(rent, payment, 0, 0)

        metrics = {
            "price": price,
            "monthlyRent": rent,
            "yield": financial.annual_yield(price, rent * 12),
            "cashflow": monthly,
            "roi": financial.roi(monthly * 12, equity if equity > 0 else price),
            "mortgagePayment": payment,
        }
        row = {"investmentId": investment.id, "name": investment.name}
        row.update({name: metrics[name] for name in params.parameters})
        rows.append(row)

    return {
        "comparisonData": {
            "investments": params.investment_ids,
            "parameters": params.parameters,
            "data": rows,
        }
    }


def yield_results(params: YieldParameters) -> Dict[str, Any]:
    annual_rent = params.monthly_rent * 12
    total_investment = params.purchase_price + params.closing_costs + params.renovation_costs
    effective_rent = annual_rent * (1 - params.vacancy_rate / 100)
    expenses = effective_rent * params.expense_rate / 100
    net_income = effective_rent - expenses

    return {
        "grossYield": financial.annual_yield(params.purchase_price, annual_rent),
        "netYield": financial.annual_yield(total_investment, net_income),
        "totalInvestment": total_investment,
        "annualRent": annual_rent,
        "effectiveRent": effective_rent,
        "expenses": expenses,
        "netIncome": net_income,
    }


# ===== ENTRY POINT =====

def generate_results(db: Session, analysis_type: AnalysisType, parameters: Dict[str, Any], calculator_id: int,
                     investment: Optional[InvestmentDB] = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Validate parameters for the analysis type and compute its results.

    Returns (normalized_parameters, results). Raises pydantic.ValidationError
    for bad parameters and NotFoundError when a comparison names investments
    outside the calculator.
    """
    schema = PARAMETER_SCHEMAS[AnalysisType(analysis_type)]
    params = schema.model_validate(parameters)

    if analysis_type == AnalysisType.MORTGAGE:
        results = mortgage_results(params, investment)
    elif analysis_type == AnalysisType.CASHFLOW:
        results = cashflow_results(params)
    elif analysis_type == AnalysisType.SENSITIVITY:
        results = sensitivity_results(params, investment)
    elif analysis_type == AnalysisType.COMPARISON:
        results = comparison_results(db, params, calculator_id)
    else:
        results = yield_results(params)

    logger.debug(f"Generated {AnalysisType(analysis_type).value} results for calculator {calculator_id}")
    return params.model_dump(by_alias=True), results

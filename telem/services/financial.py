"""
Closed-form real-estate investment formulas.

Every function is pure and works on floats. Rates are percentages
(4.5 means 4.5%), terms are in years, and any ratio whose denominator
would be zero or negative returns 0 instead of raising.
"""
from typing import List, Dict


def mortgage_payment(principal: float, annual_rate: float, years: float) -> float:
    """Monthly payment of a fully amortizing loan."""
    if principal <= 0 or annual_rate <= 0 or years <= 0:
        return 0.0

    monthly_rate = annual_rate / 100 / 12
    payments = years * 12
    growth = (1 + monthly_rate) ** payments
    return principal * monthly_rate * growth / (growth - 1)


def total_interest(principal: float, annual_rate: float, years: float) -> float:
    total_paid = mortgage_payment(principal, annual_rate, years) * years * 12
    return total_paid - principal if total_paid > 0 else 0.0


def cash_flow(monthly_rent: float, mortgage: float, management_fee: float, other_expenses: float) -> float:
    """Monthly cash flow after debt service and operating costs."""
    return monthly_rent - mortgage - management_fee - other_expenses


def roi(annual_cash_flow: float, initial_investment: float) -> float:
    if initial_investment <= 0:
        return 0.0
    return annual_cash_flow / initial_investment * 100


def payback_period(initial_investment: float, annual_cash_flow: float) -> float:
    """Years until the cash flow repays the investment; 0 when it never does."""
    if annual_cash_flow <= 0:
        return 0.0
    return initial_investment / annual_cash_flow


def annual_yield(price: float, annual_rent: float) -> float:
    if price <= 0:
        return 0.0
    return annual_rent / price * 100


def cap_rate(net_operating_income: float, property_value: float) -> float:
    if property_value <= 0:
        return 0.0
    return net_operating_income / property_value * 100


def cash_on_cash_return(annual_pre_tax_cash_flow: float, total_cash_invested: float) -> float:
    if total_cash_invested <= 0:
        return 0.0
    return annual_pre_tax_cash_flow / total_cash_invested * 100


def gross_rent_multiplier(property_value: float, annual_gross_rent: float) -> float:
    if annual_gross_rent <= 0:
        return 0.0
    return property_value / annual_gross_rent


def debt_service_coverage_ratio(net_operating_income: float, annual_debt_service: float) -> float:
    if annual_debt_service <= 0:
        return 0.0
    return net_operating_income / annual_debt_service


def loan_to_value(loan_amount: float, property_value: float) -> float:
    if property_value <= 0:
        return 0.0
    return loan_amount / property_value * 100


def price_in_local_currency(price: float, exchange_rate: float) -> float:
    return price * exchange_rate


def price_with_vat(price_without_vat: float, vat_rate: float) -> float:
    # vat_rate is a percentage, matching the stored calculator/setting values
    return price_without_vat * (1 + vat_rate / 100)


def management_fee(monthly_rent: float, fee_percentage: float) -> float:
    return monthly_rent * fee_percentage / 100


def amortization_schedule(principal: float, annual_rate: float, years: float) -> List[Dict[str, float]]:
    """
    Month-by-month breakdown of a loan.

    Each row carries period, payment, principal, interest and the remaining
    balance (clamped at zero). The schedule stops as soon as the balance is
    paid off, even if that happens before the last scheduled period.
    """
    payment = mortgage_payment(principal, annual_rate, years)
    if payment <= 0:
        return []

    monthly_rate = annual_rate / 100 / 12
    schedule = []
    balance = principal

    for period in range(1, int(years * 12) + 1):
        interest = balance * monthly_rate
        principal_part = payment - interest
        balance -= principal_part

        schedule.append({
            "period": period,
            "payment": payment,
            "principal": principal_part,
            "interest": interest,
            "balance": balance if balance > 0 else 0.0,
        })

        if balance <= 0:
            break

    return schedule


def sensitivity_sweep(base_value: float, range_percentage: float = 20, steps: int = 5) -> List[Dict[str, float]]:
    """
    Linearly spaced inputs across [-range, +range] percent of base_value.

    Returns steps + 1 points of {"percentage", "value"}. Mapping each value
    through a formula is left to the caller.
    """
    if steps <= 0:
        raise ValueError("steps must be a positive integer")

    step_size = range_percentage * 2 / steps
    points = []
    for i in range(steps + 1):
        percentage = -range_percentage + i * step_size
        points.append({
            "percentage": percentage,
            "value": base_value * (1 + percentage / 100),
        })
    return points

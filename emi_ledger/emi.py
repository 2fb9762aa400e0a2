"""
EMI Calculator

Equated monthly instalment for a reducing-balance loan at a fixed nominal
annual rate compounded monthly. Shared by origination, term edits and the
reduce_emi prepayment recomputation so all three use the same formula.
"""

from decimal import Decimal
from typing import Union

from .currency import Money
from .exceptions import InvalidTermError


RateLike = Union[Decimal, int, str]


def to_rate(annual_rate_percent: RateLike) -> Decimal:
    """Normalize an annual percentage rate to Decimal (never via float)"""
    if isinstance(annual_rate_percent, float):
        raise TypeError("Interest rates must be Decimal, int or str, not float")
    if not isinstance(annual_rate_percent, Decimal):
        annual_rate_percent = Decimal(str(annual_rate_percent))
    return annual_rate_percent


def monthly_rate(annual_rate_percent: RateLike) -> Decimal:
    """Monthly rate as a fraction, e.g. 8.5 -> 0.0070833..."""
    return to_rate(annual_rate_percent) / Decimal('12') / Decimal('100')


def compute_emi(principal: Money, annual_rate_percent: RateLike, months: int) -> Money:
    """
    Compute the EMI for a principal, annual rate (percent) and tenure.

    Zero-rate loans split the principal evenly. Otherwise the standard
    annuity formula P * r * (1+r)^n / ((1+r)^n - 1) is used. The result is
    rounded half-up to the currency's minor unit.

    Raises:
        InvalidTermError: months <= 0, principal <= 0 or rate < 0
    """
    rate = to_rate(annual_rate_percent)

    if months <= 0:
        raise InvalidTermError("Tenure must be at least one month", months=months)
    if not principal.is_positive():
        raise InvalidTermError("Principal must be positive", principal=principal.amount)
    if rate < 0:
        raise InvalidTermError("Interest rate cannot be negative", annual_rate_percent=rate)

    if rate == 0:
        return principal / Decimal(months)

    r = monthly_rate(rate)
    factor = (Decimal('1') + r) ** months
    emi_amount = principal.amount * r * factor / (factor - Decimal('1'))
    return Money(emi_amount, principal.currency)


def total_interest_payable(principal: Money, emi_amount: Money, months: int) -> Money:
    """Interest implied by paying emi_amount for the full tenure"""
    return emi_amount * months - principal

"""
Portfolio Summary Module

Read-only rollups across loans. Only the ledger-derived fields on each
loan are summed; nothing is recomputed here.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, Optional

from .currency import Currency, Money

if TYPE_CHECKING:
    from .loans import Loan


@dataclass(frozen=True)
class TypeBreakdown:
    """Active-loan totals for one loan type"""
    outstanding: Money
    monthly_emi: Money
    count: int


@dataclass(frozen=True)
class PortfolioSummary:
    """Totals across a set of loans"""
    total_outstanding: Money      # Active loans only
    total_monthly_emi: Money      # Active loans only
    total_borrowed: Money
    total_interest_paid: Money
    total_prepaid: Money
    active_count: int
    closed_count: int
    by_type: Dict[str, TypeBreakdown] = field(default_factory=dict)


def summarize(loans: Iterable['Loan'], currency: Optional[Currency] = None) -> PortfolioSummary:
    """
    Reduce loans to a portfolio summary.

    Outstanding principal and EMI are summed over active loans; borrowed,
    interest paid and prepaid totals cover every loan passed in.

    Args:
        loans: Loans to summarize, all in the same currency
        currency: Currency for an empty portfolio (defaults to INR)

    Raises:
        ValueError: if the loans are in different currencies
    """
    loans = list(loans)
    if loans:
        currency = loans[0].currency
    elif currency is None:
        currency = Currency.INR

    mixed = sorted({loan.currency.code for loan in loans if loan.currency != currency})
    if mixed:
        raise ValueError(f"Cannot summarize {currency.code} loans together with {', '.join(mixed)}")

    zero = Money.zero(currency)
    total_outstanding = total_emi = total_borrowed = total_interest = total_prepaid = zero
    active_count = closed_count = 0
    by_type: Dict[str, TypeBreakdown] = {}

    for loan in loans:
        state = loan.state
        total_borrowed = total_borrowed + loan.principal_amount
        total_interest = total_interest + state.total_interest_paid
        total_prepaid = total_prepaid + state.total_prepaid

        if state.is_closed:
            closed_count += 1
            continue

        active_count += 1
        total_outstanding = total_outstanding + state.outstanding_principal
        total_emi = total_emi + state.current_emi

        key = loan.loan_type.value
        bucket = by_type.get(key, TypeBreakdown(zero, zero, 0))
        by_type[key] = TypeBreakdown(
            outstanding=bucket.outstanding + state.outstanding_principal,
            monthly_emi=bucket.monthly_emi + state.current_emi,
            count=bucket.count + 1
        )

    return PortfolioSummary(
        total_outstanding=total_outstanding,
        total_monthly_emi=total_emi,
        total_borrowed=total_borrowed,
        total_interest_paid=total_interest,
        total_prepaid=total_prepaid,
        active_count=active_count,
        closed_count=closed_count,
        by_type=by_type
    )

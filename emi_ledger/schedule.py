"""
Amortization Schedule Module

Generates amortization tables from a loan state snapshot. The generator is
a pure function of its inputs: the "original" schedule and the "remaining"
schedule differ only in which principal and EMI are passed in.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple
import calendar

from .currency import Money, min_money
from .emi import RateLike, compute_emi, monthly_rate
from .exceptions import InvalidTermError, NonAmortizingScheduleError


@dataclass(frozen=True)
class ScheduleRow:
    """Single instalment in an amortization schedule"""
    emi_number: int
    opening_balance: Money
    principal_component: Money
    interest_component: Money
    total_emi: Money
    closing_balance: Money
    due_date: Optional[date] = None


@dataclass(frozen=True)
class ScheduleTotals:
    """Column totals for a schedule"""
    total_principal: Money
    total_interest: Money
    total_payable: Money
    instalments: int


@dataclass(frozen=True)
class EmiQuote:
    """EMI preview for terms that have not been persisted as a loan"""
    emi: Money
    total_payable: Money
    total_interest: Money
    schedule: List[ScheduleRow]


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def amortize_period(
    balance: Money,
    rate: Decimal,
    emi_amount: Money,
    emi_number: int
) -> Tuple[Money, Money]:
    """
    Split one EMI into (interest, principal) against the opening balance.

    Raises:
        NonAmortizingScheduleError: if the EMI does not exceed the interest
    """
    interest = balance * rate
    if emi_amount <= interest:
        raise NonAmortizingScheduleError(emi_amount.amount, interest.amount, balance.amount, emi_number)
    principal = min_money(emi_amount - interest, balance)
    return interest, principal


def build_schedule(
    principal: Money,
    annual_rate_percent: RateLike,
    emi_amount: Money,
    max_months: int,
    start_date: Optional[date] = None
) -> List[ScheduleRow]:
    """
    Build the amortization table for a balance paid down by a fixed EMI.

    Stops when the balance reaches zero or after max_months rows. If the
    bound is reached with less than one instalment left, that residue is
    rounding drift and the final row settles it, so a schedule built for the
    contracted tenure always closes at zero. A larger residue is left in the
    last row's closing balance.

    Args:
        principal: Opening balance
        annual_rate_percent: Nominal annual rate in percent
        emi_amount: Instalment applied every month
        max_months: Safety bound on the number of rows
        start_date: Due date of the first row; rows are undated if omitted

    Returns:
        Ordered list of ScheduleRow
    """
    if max_months < 1:
        raise InvalidTermError("Schedule needs at least one month", max_months=max_months)

    rate = monthly_rate(annual_rate_percent)
    zero = Money.zero(principal.currency)
    rows: List[ScheduleRow] = []
    balance = principal

    for emi_number in range(1, max_months + 1):
        if not balance.is_positive():
            break

        interest, principal_component = amortize_period(balance, rate, emi_amount, emi_number)

        if emi_number == max_months:
            residue = balance - principal_component
            if residue.is_positive() and residue < emi_amount:
                principal_component = balance

        closing = balance - principal_component
        if closing.is_negative():
            closing = zero

        rows.append(ScheduleRow(
            emi_number=emi_number,
            opening_balance=balance,
            principal_component=principal_component,
            interest_component=interest,
            total_emi=principal_component + interest,
            closing_balance=closing,
            due_date=add_months(start_date, emi_number - 1) if start_date else None
        ))
        balance = closing

    return rows


def months_to_close(
    balance: Money,
    annual_rate_percent: RateLike,
    emi_amount: Money,
    limit: int
) -> int:
    """
    Smallest number of months in which emi_amount pays off balance.

    Steps the same rows as build_schedule rather than inverting the EMI
    formula, so rounding is identical. Returns limit if the balance is not
    cleared within limit months.
    """
    if not balance.is_positive():
        return 0

    rate = monthly_rate(annual_rate_percent)
    months = 0
    while balance.is_positive() and months < limit:
        months += 1
        _, principal_component = amortize_period(balance, rate, emi_amount, months)
        balance = balance - principal_component
    return months


def schedule_totals(rows: List[ScheduleRow], currency) -> ScheduleTotals:
    """Sum the principal, interest and payable columns of a schedule"""
    total_principal = Money.zero(currency)
    total_interest = Money.zero(currency)
    for row in rows:
        total_principal = total_principal + row.principal_component
        total_interest = total_interest + row.interest_component
    return ScheduleTotals(
        total_principal=total_principal,
        total_interest=total_interest,
        total_payable=total_principal + total_interest,
        instalments=len(rows)
    )


def quote_emi(
    principal: Money,
    annual_rate_percent: RateLike,
    months: int,
    start_date: Optional[date] = None
) -> EmiQuote:
    """
    Preview EMI, totals and full schedule for prospective loan terms.

    Totals are taken from the schedule itself so that principal plus
    interest always reconciles to the total payable.
    """
    emi = compute_emi(principal, annual_rate_percent, months)
    rows = build_schedule(principal, annual_rate_percent, emi, months, start_date)
    totals = schedule_totals(rows, principal.currency)
    return EmiQuote(
        emi=emi,
        total_payable=totals.total_payable,
        total_interest=totals.total_interest,
        schedule=rows
    )

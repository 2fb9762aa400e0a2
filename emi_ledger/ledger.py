"""
Payment Ledger Module

The payment list of a loan is an event log and the loan's derived state is
a fold over it. ``replay`` is the only way state is produced: recording a
payment, deleting one and editing terms all rebuild the state by replaying
the ordered ledger from the origination baseline. Every snapshot is
immutable, so replaying the same ledger twice yields equal results.
"""

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Collection, Iterable, List, Optional, Tuple

from .currency import Money, min_money
from .emi import compute_emi, monthly_rate
from .exceptions import (
    InvalidPaymentError, LoanClosedError, OverpaymentError, UnderpaymentError
)
from .schedule import months_to_close


DEFAULT_SAFETY_LIMIT_MONTHS = 1200


class PaymentType(Enum):
    """Kinds of payment a borrower can record"""
    EMI = "emi"
    PREPAYMENT = "prepayment"
    PART_PAYMENT = "part_payment"   # Same treatment as prepayment

    @property
    def is_prepayment(self) -> bool:
        return self in (PaymentType.PREPAYMENT, PaymentType.PART_PAYMENT)


class PrepaymentAction(Enum):
    """What a prepayment does to the remaining repayment plan"""
    REDUCE_TENURE = "reduce_tenure"   # Same EMI, fewer months
    REDUCE_EMI = "reduce_emi"         # Same months, smaller EMI


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass(frozen=True)
class Payment:
    """
    A payment event in a loan's ledger.

    The first block of fields is what the borrower recorded. The second
    block is derived by the ledger on every replay and is never set by
    callers.
    """
    id: str
    payment_type: PaymentType
    amount: Money
    payment_date: date
    sequence: int                                   # Insertion order, breaks same-day ties
    prepayment_action: Optional[PrepaymentAction] = None
    notes: Optional[str] = None
    receipt_number: Optional[str] = None

    principal_component: Optional[Money] = None
    interest_component: Optional[Money] = None
    outstanding_after: Optional[Money] = None
    emi_number: Optional[int] = None
    new_emi: Optional[Money] = None
    tenure_saved_months: Optional[int] = None
    interest_shortfall: Optional[Money] = None     # Interest left unpaid by a short EMI

    def __post_init__(self):
        if not self.amount.is_positive():
            raise InvalidPaymentError("Payment amount must be positive", amount=self.amount.amount)

        if self.payment_type == PaymentType.EMI:
            if self.prepayment_action is not None:
                raise InvalidPaymentError(
                    "Prepayment action only applies to prepayments",
                    payment_type=self.payment_type.value,
                    prepayment_action=self.prepayment_action.value
                )
        elif self.prepayment_action is None:
            object.__setattr__(self, 'prepayment_action', PrepaymentAction.REDUCE_TENURE)

    @property
    def ordering_key(self) -> Tuple[date, int]:
        return (self.payment_date, self.sequence)


@dataclass(frozen=True)
class LoanState:
    """Derived loan state after folding some prefix of the ledger"""
    outstanding_principal: Money
    current_emi: Money
    current_tenure_months: int
    paid_emis: int
    total_principal_paid: Money
    total_interest_paid: Money
    total_prepaid: Money
    total_paid_amount: Money
    status: LoanStatus = LoanStatus.ACTIVE
    last_payment_date: Optional[date] = None
    closed_date: Optional[date] = None

    @property
    def is_closed(self) -> bool:
        return self.status == LoanStatus.CLOSED


@dataclass(frozen=True)
class LoanBaseline:
    """Origination terms every replay starts from"""
    principal: Money
    annual_rate: Decimal
    tenure_months: int
    emi_amount: Money
    safety_limit_months: int = DEFAULT_SAFETY_LIMIT_MONTHS

    @classmethod
    def from_terms(
        cls,
        principal: Money,
        annual_rate: Decimal,
        tenure_months: int,
        safety_limit_months: int = DEFAULT_SAFETY_LIMIT_MONTHS
    ) -> 'LoanBaseline':
        """Build a fresh baseline, computing the EMI from the terms"""
        return cls(
            principal=principal,
            annual_rate=annual_rate,
            tenure_months=tenure_months,
            emi_amount=compute_emi(principal, annual_rate, tenure_months),
            safety_limit_months=safety_limit_months
        )

    def initial_state(self) -> LoanState:
        zero = Money.zero(self.principal.currency)
        return LoanState(
            outstanding_principal=self.principal,
            current_emi=self.emi_amount,
            current_tenure_months=self.tenure_months,
            paid_emis=0,
            total_principal_paid=zero,
            total_interest_paid=zero,
            total_prepaid=zero,
            total_paid_amount=zero
        )


@dataclass(frozen=True)
class LedgerResult:
    """Final state plus every payment with its derived fields filled in"""
    state: LoanState
    payments: Tuple[Payment, ...]


def order_payments(payments: Iterable[Payment]) -> List[Payment]:
    """Chronological order, insertion order for same-day payments"""
    return sorted(payments, key=lambda p: p.ordering_key)


def _close_if_paid_off(state: LoanState, payment: Payment) -> LoanState:
    if state.outstanding_principal.is_positive():
        return state
    zero = Money.zero(state.outstanding_principal.currency)
    return replace(
        state,
        outstanding_principal=zero,
        current_emi=zero,
        current_tenure_months=0,
        status=LoanStatus.CLOSED,
        closed_date=payment.payment_date
    )


def _apply_emi(
    baseline: LoanBaseline,
    state: LoanState,
    payment: Payment,
    strict: bool
) -> Tuple[LoanState, Payment]:
    outstanding = state.outstanding_principal
    interest = outstanding * monthly_rate(baseline.annual_rate)
    shortfall = None

    if payment.amount < interest:
        if strict:
            raise UnderpaymentError(payment.amount.amount, interest.amount, payment.id)
        # Whole amount goes to interest; the unpaid part is not capitalized
        shortfall = interest - payment.amount
        interest = payment.amount

    principal = min_money(payment.amount - interest, outstanding)
    paid_emis = state.paid_emis + 1

    new_state = replace(
        state,
        outstanding_principal=outstanding - principal,
        current_tenure_months=max(0, state.current_tenure_months - 1),
        paid_emis=paid_emis,
        total_principal_paid=state.total_principal_paid + principal,
        total_interest_paid=state.total_interest_paid + interest,
        total_paid_amount=state.total_paid_amount + payment.amount,
        last_payment_date=payment.payment_date
    )
    new_state = _close_if_paid_off(new_state, payment)

    applied = replace(
        payment,
        principal_component=principal,
        interest_component=interest,
        outstanding_after=new_state.outstanding_principal,
        emi_number=paid_emis,
        new_emi=None,
        tenure_saved_months=None,
        interest_shortfall=shortfall
    )
    return new_state, applied


def _apply_prepayment(baseline: LoanBaseline, state: LoanState, payment: Payment) -> Tuple[LoanState, Payment]:
    outstanding = state.outstanding_principal
    if payment.amount > outstanding:
        raise OverpaymentError(payment.amount.amount, outstanding.amount, payment.id)

    remaining = outstanding - payment.amount
    current_emi = state.current_emi
    tenure = state.current_tenure_months
    new_emi = None
    tenure_saved = None

    if remaining.is_positive():
        if payment.prepayment_action == PrepaymentAction.REDUCE_EMI:
            # A prepayment never raises the EMI, even when earlier short EMIs left the
            # balance above plan; the final instalment absorbs that difference.
            current_emi = min_money(
                compute_emi(remaining, baseline.annual_rate, max(tenure, 1)),
                current_emi
            )
            new_emi = current_emi
        else:
            months = months_to_close(remaining, baseline.annual_rate, current_emi, baseline.safety_limit_months)
            new_tenure = min(months, tenure)
            tenure_saved = tenure - new_tenure
            tenure = new_tenure

    new_state = replace(
        state,
        outstanding_principal=remaining,
        current_emi=current_emi,
        current_tenure_months=tenure,
        total_principal_paid=state.total_principal_paid + payment.amount,
        total_prepaid=state.total_prepaid + payment.amount,
        total_paid_amount=state.total_paid_amount + payment.amount,
        last_payment_date=payment.payment_date
    )
    new_state = _close_if_paid_off(new_state, payment)

    applied = replace(
        payment,
        principal_component=payment.amount,
        interest_component=Money.zero(payment.amount.currency),
        outstanding_after=new_state.outstanding_principal,
        emi_number=None,
        new_emi=new_emi,
        tenure_saved_months=tenure_saved,
        interest_shortfall=None
    )
    return new_state, applied


def apply_payment(
    baseline: LoanBaseline,
    state: LoanState,
    payment: Payment,
    strict: bool = True
) -> Tuple[LoanState, Payment]:
    """
    Apply one payment to a state snapshot.

    Returns the next snapshot and the payment with its principal/interest
    split, outstanding_after and prepayment effects filled in. Neither
    input is modified. With strict=False an EMI below the interest due is
    applied as interest only and the unpaid interest is recorded as the
    payment's interest_shortfall.

    Raises:
        LoanClosedError: the state is already closed
        UnderpaymentError: an EMI payment below the interest due (strict only)
        OverpaymentError: a prepayment above the outstanding principal
    """
    if state.is_closed:
        raise LoanClosedError()

    if payment.payment_type.is_prepayment:
        return _apply_prepayment(baseline, state, payment)
    return _apply_emi(baseline, state, payment, strict)


def replay(
    baseline: LoanBaseline,
    payments: Iterable[Payment],
    strict_payment_ids: Optional[Collection[str]] = None
) -> LedgerResult:
    """
    Fold the full ledger, in chronological order, from the baseline.

    Used for every mutation: a backdated payment re-interests every later
    payment, and deleting a payment rebuilds all the others.

    Every EMI must cover its interest unless strict_payment_ids is given,
    in which case only those payments are held to it and any other short
    EMI is applied as interest only.
    """
    state = baseline.initial_state()
    applied: List[Payment] = []
    for payment in order_payments(payments):
        strict = strict_payment_ids is None or payment.id in strict_payment_ids
        state, applied_payment = apply_payment(baseline, state, payment, strict)
        applied.append(applied_payment)
    return LedgerResult(state=state, payments=tuple(applied))

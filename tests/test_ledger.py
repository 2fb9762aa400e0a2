"""
Test suite for the payment ledger

Tests how each payment type moves the loan state, the closed-loan
lifecycle, and replay of the ordered ledger from the baseline.
"""

import pytest
from decimal import Decimal
from datetime import date

from emi_ledger.currency import Money, Currency
from emi_ledger.emi import compute_emi
from emi_ledger.exceptions import (
    InvalidPaymentError, LoanClosedError, OverpaymentError, UnderpaymentError
)
from emi_ledger.ledger import (
    LoanBaseline, LoanStatus, Payment, PaymentType, PrepaymentAction,
    apply_payment, order_payments, replay
)


def inr(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.INR)


def emi_payment(amount, payment_date, sequence, payment_id=None) -> Payment:
    return Payment(
        id=payment_id or f"emi-{sequence}",
        payment_type=PaymentType.EMI,
        amount=inr(amount),
        payment_date=payment_date,
        sequence=sequence
    )


def prepayment(amount, payment_date, sequence, action=PrepaymentAction.REDUCE_TENURE,
               payment_id=None) -> Payment:
    return Payment(
        id=payment_id or f"pre-{sequence}",
        payment_type=PaymentType.PREPAYMENT,
        amount=inr(amount),
        payment_date=payment_date,
        sequence=sequence,
        prepayment_action=action
    )


class TestPayment:
    """Test payment validation"""

    def test_amount_must_be_positive(self):
        with pytest.raises(InvalidPaymentError):
            emi_payment('0', date(2024, 2, 1), 1)
        with pytest.raises(InvalidPaymentError):
            emi_payment('-100', date(2024, 2, 1), 1)

    def test_emi_rejects_prepayment_action(self):
        with pytest.raises(InvalidPaymentError):
            Payment(
                id="p1",
                payment_type=PaymentType.EMI,
                amount=inr('100'),
                payment_date=date(2024, 2, 1),
                sequence=1,
                prepayment_action=PrepaymentAction.REDUCE_EMI
            )

    def test_prepayment_defaults_to_reduce_tenure(self):
        payment = Payment(
            id="p1",
            payment_type=PaymentType.PART_PAYMENT,
            amount=inr('100'),
            payment_date=date(2024, 2, 1),
            sequence=1
        )
        assert payment.prepayment_action == PrepaymentAction.REDUCE_TENURE
        assert payment.payment_type.is_prepayment

    def test_ordering(self):
        """Date first, then insertion order for the same day"""
        late = emi_payment('100', date(2024, 3, 1), 1)
        same_day_second = emi_payment('100', date(2024, 2, 1), 3)
        same_day_first = emi_payment('100', date(2024, 2, 1), 2)

        ordered = order_payments([late, same_day_second, same_day_first])
        assert [p.sequence for p in ordered] == [2, 3, 1]


class TestEmiPayments:
    """Test EMI application"""

    def setup_method(self):
        self.baseline = LoanBaseline.from_terms(inr('100000'), Decimal('12'), 12)
        self.state = self.baseline.initial_state()

    def test_baseline(self):
        assert self.baseline.emi_amount == inr('8884.88')
        assert self.state.outstanding_principal == inr('100000')
        assert self.state.current_tenure_months == 12
        assert self.state.status == LoanStatus.ACTIVE

    def test_interest_principal_split(self):
        state, applied = apply_payment(
            self.baseline, self.state, emi_payment('8884.88', date(2024, 2, 1), 1)
        )

        assert applied.interest_component == inr('1000.00')
        assert applied.principal_component == inr('7884.88')
        assert applied.outstanding_after == inr('92115.12')
        assert applied.emi_number == 1

        assert state.outstanding_principal == inr('92115.12')
        assert state.paid_emis == 1
        assert state.current_tenure_months == 11
        assert state.total_interest_paid == inr('1000.00')
        assert state.total_principal_paid == inr('7884.88')
        assert state.total_paid_amount == inr('8884.88')
        assert state.last_payment_date == date(2024, 2, 1)

    def test_inputs_untouched(self):
        """Applying a payment returns new snapshots"""
        payment = emi_payment('8884.88', date(2024, 2, 1), 1)
        apply_payment(self.baseline, self.state, payment)

        assert self.state.outstanding_principal == inr('100000')
        assert payment.outstanding_after is None

    def test_underpayment(self):
        with pytest.raises(UnderpaymentError) as exc_info:
            apply_payment(self.baseline, self.state, emi_payment('999.99', date(2024, 2, 1), 1))
        assert exc_info.value.details['interest_due'] == '1000.00'

    def test_interest_only_payment(self):
        state, applied = apply_payment(self.baseline, self.state, emi_payment('1000', date(2024, 2, 1), 1))
        assert applied.principal_component == inr('0')
        assert state.outstanding_principal == inr('100000')

    def test_emi_larger_than_outstanding_closes(self):
        """Principal is capped at the outstanding balance"""
        baseline = LoanBaseline.from_terms(inr('12000'), Decimal('0'), 12)
        state, applied = apply_payment(baseline, baseline.initial_state(),
                                       emi_payment('15000', date(2024, 2, 1), 1))

        assert applied.principal_component == inr('12000')
        assert state.is_closed
        assert state.total_principal_paid == inr('12000')

    def test_full_tenure_of_emis_closes_the_loan(self):
        baseline = LoanBaseline.from_terms(inr('120000'), Decimal('0'), 12)
        payments = [
            emi_payment('10000', date(2024, m, 1), m) for m in range(1, 13)
        ]
        result = replay(baseline, payments)

        assert result.state.is_closed
        assert result.state.closed_date == date(2024, 12, 1)
        assert result.state.current_emi.is_zero()
        assert result.state.current_tenure_months == 0
        assert result.state.paid_emis == 12
        assert result.state.total_principal_paid == inr('120000')


class TestPrepayments:
    """Test prepayment application and its effect on EMI or tenure"""

    def setup_method(self):
        # Zero-rate loan keeps every number exact
        self.baseline = LoanBaseline.from_terms(inr('120000'), Decimal('0'), 12)
        self.state = self.baseline.initial_state()

    def test_reduce_tenure(self):
        state, applied = apply_payment(
            self.baseline, self.state, prepayment('30000', date(2024, 1, 15), 1)
        )

        assert state.outstanding_principal == inr('90000')
        assert state.current_emi == inr('10000')
        assert state.current_tenure_months == 9
        assert applied.tenure_saved_months == 3
        assert applied.new_emi is None
        assert applied.interest_component.is_zero()
        assert state.total_prepaid == inr('30000')
        assert state.total_principal_paid == inr('30000')

    def test_reduce_emi(self):
        state, applied = apply_payment(
            self.baseline, self.state,
            prepayment('30000', date(2024, 1, 15), 1, action=PrepaymentAction.REDUCE_EMI)
        )

        assert state.current_emi == inr('7500')
        assert state.current_tenure_months == 12
        assert applied.new_emi == inr('7500')
        assert applied.tenure_saved_months is None

    def test_reduce_emi_scenario(self):
        """500,000 off a 2,000,000 balance with 100 months left lowers the EMI only"""
        baseline = LoanBaseline.from_terms(inr('2000000'), Decimal('9'), 100)
        state, _ = apply_payment(
            baseline, baseline.initial_state(),
            prepayment('500000', date(2024, 1, 15), 1, action=PrepaymentAction.REDUCE_EMI)
        )

        assert state.current_emi < baseline.emi_amount
        assert state.current_emi == compute_emi(inr('1500000'), Decimal('9'), 100)
        assert state.current_tenure_months == 100

    def test_reduce_tenure_with_interest(self):
        baseline = LoanBaseline.from_terms(inr('5000000'), Decimal('8.5'), 240)
        state, applied = apply_payment(
            baseline, baseline.initial_state(), prepayment('1000000', date(2024, 1, 15), 1)
        )

        assert state.current_emi == baseline.emi_amount
        assert state.current_tenure_months < 240
        assert applied.tenure_saved_months == 240 - state.current_tenure_months

    def test_overpayment_rejected(self):
        """Prepayments above the outstanding are rejected, never clamped"""
        with pytest.raises(OverpaymentError) as exc_info:
            apply_payment(self.baseline, self.state, prepayment('120000.01', date(2024, 1, 15), 1))
        assert exc_info.value.details['outstanding'] == '120000.00'

    def test_full_prepayment_closes(self):
        state, applied = apply_payment(
            self.baseline, self.state, prepayment('120000', date(2024, 1, 15), 1)
        )

        assert state.status == LoanStatus.CLOSED
        assert state.outstanding_principal.is_zero()
        assert state.current_emi.is_zero()
        assert state.current_tenure_months == 0
        assert state.closed_date == date(2024, 1, 15)
        assert applied.outstanding_after.is_zero()

    def test_payment_after_close_rejected(self):
        state, _ = apply_payment(self.baseline, self.state, prepayment('120000', date(2024, 1, 15), 1))

        with pytest.raises(LoanClosedError):
            apply_payment(self.baseline, state, emi_payment('10000', date(2024, 2, 1), 2))
        with pytest.raises(LoanClosedError):
            apply_payment(self.baseline, state, prepayment('1', date(2024, 2, 1), 2))


class TestReplay:
    """Test replay of the ordered ledger"""

    def setup_method(self):
        self.baseline = LoanBaseline.from_terms(inr('100000'), Decimal('12'), 12)

    def test_empty_ledger(self):
        result = replay(self.baseline, [])
        assert result.state == self.baseline.initial_state()
        assert result.payments == ()

    def test_backdated_payment_reinterests_later_payments(self):
        """A prepayment dated before an EMI lowers that EMI's interest"""
        emi = emi_payment('8884.88', date(2024, 3, 1), 1)
        early = prepayment('10000', date(2024, 2, 15), 2)

        result = replay(self.baseline, [emi, early])

        assert [p.id for p in result.payments] == [early.id, emi.id]
        applied_emi = result.payments[1]
        assert applied_emi.interest_component == inr('900.00')
        assert applied_emi.principal_component == inr('7984.88')
        assert result.state.outstanding_principal == inr('82015.12')

    def test_emi_scenario(self):
        """Twelve EMIs on the 5,000,000 home loan"""
        baseline = LoanBaseline.from_terms(inr('5000000'), Decimal('8.5'), 240)
        payments = [
            emi_payment(baseline.emi_amount.amount, date(2024, m, 5), m) for m in range(1, 13)
        ]
        state = replay(baseline, payments).state

        assert state.outstanding_principal < inr('5000000')
        assert state.total_interest_paid + state.total_principal_paid == baseline.emi_amount * 12
        assert state.paid_emis == 12
        assert state.current_tenure_months == 228

    def test_replay_failure_propagates(self):
        payments = [
            prepayment('100000', date(2024, 2, 1), 1),
            emi_payment('8884.88', date(2024, 3, 1), 2),
        ]
        with pytest.raises(LoanClosedError):
            replay(self.baseline, payments)

    def test_replay_is_idempotent(self):
        payments = [
            emi_payment('8884.88', date(2024, 2, 1), 1),
            prepayment('5000', date(2024, 2, 20), 2, action=PrepaymentAction.REDUCE_EMI),
            emi_payment('8884.88', date(2024, 3, 1), 3),
        ]
        first = replay(self.baseline, payments)
        assert replay(self.baseline, payments) == first
        assert replay(self.baseline, first.payments) == first

    def test_short_emi_replayed_as_interest_only(self):
        """Outside the strict set a short EMI pays interest only and records the shortfall"""
        short = emi_payment('888.49', date(2024, 2, 1), 1)
        with pytest.raises(UnderpaymentError):
            replay(self.baseline, [short])

        result = replay(self.baseline, [short], strict_payment_ids=())

        applied = result.payments[0]
        assert applied.interest_component == inr('888.49')
        assert applied.principal_component == inr('0')
        assert applied.interest_shortfall == inr('111.51')
        assert result.state.outstanding_principal == inr('100000')
        assert result.state.total_interest_paid == inr('888.49')
        assert result.state.paid_emis == 1

    def test_strict_set_limits_validation(self):
        short = emi_payment('888.49', date(2024, 2, 1), 1)
        new = emi_payment('500', date(2024, 3, 1), 2)

        with pytest.raises(UnderpaymentError) as exc_info:
            replay(self.baseline, [short, new], strict_payment_ids={new.id})
        assert exc_info.value.details['payment_id'] == new.id

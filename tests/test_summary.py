"""
Tests for portfolio summaries
"""

import pytest
from decimal import Decimal
from datetime import date

from emi_ledger.currency import Money, Currency
from emi_ledger.ledger import PaymentType
from emi_ledger.loans import LoanManager, LoanType
from emi_ledger.storage import InMemoryStorage
from emi_ledger.summary import summarize


def inr(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.INR)


class TestSummarize:
    """Test rollups across loans"""

    def setup_method(self):
        self.manager = LoanManager(InMemoryStorage())

    def add_loan(self, principal, loan_type, currency=Currency.INR):
        return self.manager.create_loan(
            name=f"{loan_type.value} loan",
            loan_type=loan_type,
            lender="Bank",
            principal_amount=Money(Decimal(principal), currency),
            interest_rate=Decimal('0'),
            tenure_months=12,
            disbursal_date=date(2024, 1, 1),
        )

    def test_empty_portfolio(self):
        summary = summarize([])

        assert summary.total_outstanding == inr('0')
        assert summary.active_count == 0
        assert summary.closed_count == 0
        assert summary.by_type == {}

    def test_empty_portfolio_currency(self):
        assert summarize([], Currency.USD).total_borrowed.currency == Currency.USD

    def test_active_and_closed(self):
        """Outstanding and EMI cover active loans; borrowed and prepaid cover all"""
        home = self.add_loan('120000', LoanType.HOME)
        car = self.add_loan('60000', LoanType.CAR)
        self.manager.record_payment(home.id, PaymentType.EMI, inr('10000'), date(2024, 2, 1))
        self.manager.record_payment(car.id, PaymentType.PREPAYMENT, inr('60000'), date(2024, 1, 15))

        summary = summarize(self.manager.list_loans())

        assert summary.total_outstanding == inr('110000')
        assert summary.total_monthly_emi == inr('10000')
        assert summary.total_borrowed == inr('180000')
        assert summary.total_prepaid == inr('60000')
        assert summary.total_interest_paid == inr('0')
        assert summary.active_count == 1
        assert summary.closed_count == 1

    def test_by_type(self):
        self.add_loan('120000', LoanType.HOME)
        self.add_loan('240000', LoanType.HOME)
        self.add_loan('12000', LoanType.GOLD)

        by_type = summarize(self.manager.list_loans()).by_type

        assert by_type["home"].count == 2
        assert by_type["home"].outstanding == inr('360000')
        assert by_type["home"].monthly_emi == inr('30000')
        assert by_type["gold"].monthly_emi == inr('1000')

    def test_mixed_currencies_rejected(self):
        inr_loan = self.add_loan('120000', LoanType.HOME)
        usd_loan = self.add_loan('12000', LoanType.CAR, currency=Currency.USD)

        with pytest.raises(ValueError, match="USD"):
            summarize([inr_loan, usd_loan])

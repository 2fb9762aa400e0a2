"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency, decimal_from_string
from ..ledger import Payment, LoanState
from ..loans import DEFAULT_COLOR, Loan
from ..schedule import ScheduleRow, EmiQuote
from ..summary import PortfolioSummary


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field("INR", description="Currency code (INR, USD, etc.)")

    def to_money(self) -> Money:
        return Money(decimal_from_string(self.amount), Currency[self.currency.upper()])

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


def money_dict(money: Optional[Money]) -> Optional[Dict[str, str]]:
    return MoneyModel.from_money(money).model_dump() if money is not None else None


def date_str(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


# Request schemas
class CalculateEmiRequest(BaseModel):
    principal_amount: MoneyModel
    interest_rate: str  # Annual percent as string
    tenure_months: int
    first_emi_date: Optional[str] = None  # ISO date string


class CreateLoanRequest(BaseModel):
    name: str
    loan_type: str = Field("other", description="home, car, personal, education, gold, business, lap, other")
    lender: str
    principal_amount: MoneyModel
    interest_rate: str  # Annual percent as string
    tenure_months: int
    disbursal_date: str  # ISO date string
    emi_day: int = 1
    first_emi_date: Optional[str] = None
    account_number: Optional[str] = None
    branch_name: Optional[str] = None
    loan_officer: Optional[str] = None
    lender_phone: Optional[str] = None
    lender_email: Optional[str] = None
    color: str = DEFAULT_COLOR
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class UpdateLoanRequest(BaseModel):
    name: Optional[str] = None
    loan_type: Optional[str] = None
    lender: Optional[str] = None
    principal_amount: Optional[MoneyModel] = None
    interest_rate: Optional[str] = None
    tenure_months: Optional[int] = None
    disbursal_date: Optional[str] = None
    emi_day: Optional[int] = None
    first_emi_date: Optional[str] = None
    account_number: Optional[str] = None
    branch_name: Optional[str] = None
    loan_officer: Optional[str] = None
    lender_phone: Optional[str] = None
    lender_email: Optional[str] = None
    color: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    expected_version: Optional[int] = None


class RecordPaymentRequest(BaseModel):
    payment_type: str = Field("emi", description="emi, prepayment or part_payment")
    amount: MoneyModel
    payment_date: str  # ISO date string
    prepayment_action: Optional[str] = Field(None, description="reduce_tenure or reduce_emi")
    notes: Optional[str] = None
    receipt_number: Optional[str] = None
    expected_version: Optional[int] = None


# Response serializers
def state_to_response(state: LoanState) -> Dict[str, Any]:
    return {
        "outstanding_principal": money_dict(state.outstanding_principal),
        "current_emi": money_dict(state.current_emi),
        "current_tenure_months": state.current_tenure_months,
        "paid_emis": state.paid_emis,
        "total_principal_paid": money_dict(state.total_principal_paid),
        "total_interest_paid": money_dict(state.total_interest_paid),
        "total_prepaid": money_dict(state.total_prepaid),
        "total_paid_amount": money_dict(state.total_paid_amount),
        "status": state.status.value,
        "last_payment_date": date_str(state.last_payment_date),
        "closed_date": date_str(state.closed_date),
    }


def payment_to_response(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "payment_type": payment.payment_type.value,
        "amount": money_dict(payment.amount),
        "payment_date": payment.payment_date.isoformat(),
        "sequence": payment.sequence,
        "prepayment_action": payment.prepayment_action.value if payment.prepayment_action else None,
        "principal_component": money_dict(payment.principal_component),
        "interest_component": money_dict(payment.interest_component),
        "outstanding_after": money_dict(payment.outstanding_after),
        "emi_number": payment.emi_number,
        "new_emi": money_dict(payment.new_emi),
        "tenure_saved_months": payment.tenure_saved_months,
        "interest_shortfall": money_dict(payment.interest_shortfall),
        "notes": payment.notes,
        "receipt_number": payment.receipt_number,
    }


def loan_to_response(loan: Loan) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "name": loan.name,
        "loan_type": loan.loan_type.value,
        "lender": loan.lender,
        "account_number": loan.account_number,
        "branch_name": loan.branch_name,
        "loan_officer": loan.loan_officer,
        "lender_phone": loan.lender_phone,
        "lender_email": loan.lender_email,
        "color": loan.color,
        "principal_amount": money_dict(loan.principal_amount),
        "interest_rate": str(loan.interest_rate),
        "tenure_months": loan.tenure_months,
        "disbursal_date": loan.disbursal_date.isoformat(),
        "emi_day": loan.emi_day,
        "first_emi_date": date_str(loan.first_emi_date),
        "emi_amount": money_dict(loan.emi_amount),
        "total_interest_payable": money_dict(loan.total_interest_payable),
        "status": loan.status.value,
        "is_active": loan.is_active,
        "completion_pct": str(loan.completion_pct),
        "next_emi_date": date_str(loan.next_emi_date),
        "age_months": loan.age_months(),
        "notes": loan.notes,
        "tags": list(loan.tags),
        "version": loan.version,
        "state": state_to_response(loan.state),
        "payments": [payment_to_response(p) for p in loan.payments],
        "created_at": loan.created_at.isoformat(),
        "updated_at": loan.updated_at.isoformat(),
    }


def row_to_response(row: ScheduleRow) -> Dict[str, Any]:
    return {
        "emi_number": row.emi_number,
        "due_date": date_str(row.due_date),
        "opening_balance": money_dict(row.opening_balance),
        "principal_component": money_dict(row.principal_component),
        "interest_component": money_dict(row.interest_component),
        "total_emi": money_dict(row.total_emi),
        "closing_balance": money_dict(row.closing_balance),
    }


def quote_to_response(quote: EmiQuote) -> Dict[str, Any]:
    return {
        "emi": money_dict(quote.emi),
        "total_payable": money_dict(quote.total_payable),
        "total_interest": money_dict(quote.total_interest),
        "schedule": [row_to_response(row) for row in quote.schedule],
    }


def summary_to_response(summary: PortfolioSummary) -> Dict[str, Any]:
    return {
        "total_outstanding": money_dict(summary.total_outstanding),
        "total_monthly_emi": money_dict(summary.total_monthly_emi),
        "total_borrowed": money_dict(summary.total_borrowed),
        "total_interest_paid": money_dict(summary.total_interest_paid),
        "total_prepaid": money_dict(summary.total_prepaid),
        "active_count": summary.active_count,
        "closed_count": summary.closed_count,
        "by_type": {
            loan_type: {
                "outstanding": money_dict(bucket.outstanding),
                "monthly_emi": money_dict(bucket.monthly_emi),
                "count": bucket.count,
            }
            for loan_type, bucket in summary.by_type.items()
        },
    }


def parse_rate(value: str) -> Decimal:
    return decimal_from_string(value)

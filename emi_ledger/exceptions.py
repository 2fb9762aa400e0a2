"""Exception hierarchy for the loan ledger engine.

Every error carries the offending values in ``details`` so callers can show
the user what to fix. None of these are retried automatically.
"""

from typing import Any, Dict, Optional


class LoanEngineError(Exception):
    """Base exception for all loan engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class InvalidTermError(LoanEngineError):
    """Raised when loan terms cannot produce a valid EMI."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, {k: str(v) for k, v in details.items()})


class InvalidPaymentError(LoanEngineError):
    """Raised when a payment record is malformed (non-positive amount, bad action)."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, {k: str(v) for k, v in details.items()})


class NonAmortizingScheduleError(LoanEngineError):
    """Raised when the EMI does not exceed the interest accrued for a period."""

    def __init__(self, emi_amount, interest, balance, emi_number: int):
        details = {
            'emi_amount': str(emi_amount),
            'interest': str(interest),
            'balance': str(balance),
            'emi_number': emi_number,
        }
        message = (
            f"EMI {emi_amount} does not cover interest {interest} "
            f"at instalment {emi_number}; the schedule would never close"
        )
        super().__init__(message, details)


class UnderpaymentError(LoanEngineError):
    """Raised when an EMI payment is smaller than the interest due."""

    def __init__(self, amount, interest_due, payment_id: Optional[str] = None):
        details = {
            'amount': str(amount),
            'interest_due': str(interest_due),
        }
        if payment_id:
            details['payment_id'] = payment_id
        message = f"EMI payment {amount} does not cover interest due {interest_due}"
        super().__init__(message, details)


class OverpaymentError(LoanEngineError):
    """Raised when a prepayment exceeds the outstanding principal."""

    def __init__(self, amount, outstanding, payment_id: Optional[str] = None):
        details = {
            'amount': str(amount),
            'outstanding': str(outstanding),
        }
        if payment_id:
            details['payment_id'] = payment_id
        message = f"Prepayment {amount} exceeds outstanding principal {outstanding}"
        super().__init__(message, details)


class LoanClosedError(LoanEngineError):
    """Raised when a payment is recorded against a closed loan."""

    def __init__(self, loan_id: Optional[str] = None):
        details = {}
        message = "Loan is already closed"
        if loan_id:
            details['loan_id'] = loan_id
            message = f"Loan '{loan_id}' is already closed"
        super().__init__(message, details)


class LoanNotFoundError(LoanEngineError):
    """Raised when a loan cannot be found."""

    def __init__(self, loan_id: str):
        super().__init__(f"Loan '{loan_id}' not found", {'loan_id': loan_id})


class PaymentNotFoundError(LoanEngineError):
    """Raised when a payment is not part of the loan's ledger."""

    def __init__(self, loan_id: str, payment_id: str):
        details = {'loan_id': loan_id, 'payment_id': payment_id}
        super().__init__(f"Payment '{payment_id}' not found on loan '{loan_id}'", details)


class ConcurrentModificationError(LoanEngineError):
    """Raised when a loan was changed by another writer since it was loaded."""

    def __init__(self, loan_id: str, expected_version: int):
        details = {'loan_id': loan_id, 'expected_version': expected_version}
        message = f"Loan '{loan_id}' was modified concurrently (expected version {expected_version})"
        super().__init__(message, details)


class LedgerCorruptionError(LoanEngineError):
    """Raised when replaying stored payments fails.

    Stored ledgers are validated on every write, so a replay failure means
    the persisted data is inconsistent. Callers should alert, not retry.
    """

    def __init__(self, loan_id: str, cause: LoanEngineError):
        details = {'loan_id': loan_id, 'cause': type(cause).__name__}
        details.update(cause.details)
        super().__init__(f"Ledger replay failed for loan '{loan_id}': {cause.message}", details)
        self.cause = cause

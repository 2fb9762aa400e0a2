"""
Loan Module

The Loan aggregate (static terms + ledger-derived state + payments) and the
LoanManager that owns every mutation of it: origination, term edits,
recording and deleting payments, and archiving. Each mutation replays the
ledger, then persists a new version of the loan in one write.
"""

from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
import threading
import uuid

from .audit import AuditEventType, AuditTrail
from .currency import Currency, Money
from .emi import to_rate, total_interest_payable
from .exceptions import (
    ConcurrentModificationError, InvalidPaymentError, InvalidTermError,
    LedgerCorruptionError, LoanClosedError, LoanEngineError, LoanNotFoundError,
    PaymentNotFoundError
)
from .ledger import (
    DEFAULT_SAFETY_LIMIT_MONTHS, LedgerResult, LoanBaseline, LoanState,
    LoanStatus, Payment, PaymentType, PrepaymentAction, replay
)
from .logging_config import get_logger, log_action
from .schedule import ScheduleRow, add_months, build_schedule
from .storage import StorageInterface, StorageRecord
from .summary import PortfolioSummary, summarize


logger = get_logger(__name__)


class LoanType(Enum):
    """Kinds of loan tracked"""
    HOME = "home"
    CAR = "car"
    PERSONAL = "personal"
    EDUCATION = "education"
    GOLD = "gold"
    BUSINESS = "business"
    LAP = "lap"          # Loan against property
    OTHER = "other"


class ScheduleView(Enum):
    """Which snapshot a schedule is generated from"""
    ORIGINAL = "original"     # Origination terms
    REMAINING = "remaining"   # Current outstanding and EMI


DESCRIPTIVE_FIELDS = {
    'name', 'loan_type', 'lender', 'account_number', 'branch_name', 'loan_officer',
    'lender_phone', 'lender_email', 'color', 'notes', 'tags', 'emi_day', 'first_emi_date'
}
TERM_FIELDS = {'principal_amount', 'interest_rate', 'tenure_months', 'disbursal_date'}
# Fields an edit may clear by passing None
NULLABLE_FIELDS = {
    'account_number', 'branch_name', 'loan_officer', 'lender_phone', 'lender_email',
    'notes', 'tags', 'first_emi_date'
}
DEFAULT_COLOR = '#2563eb'


@dataclass(frozen=True)
class Loan(StorageRecord):
    """
    Loan aggregate exposed to callers.

    Read-only: the derived ``state`` and each payment's derived fields only
    ever come from a ledger replay inside LoanManager.
    """
    name: str
    loan_type: LoanType
    lender: str
    principal_amount: Money
    interest_rate: Decimal               # Annual percent, e.g. 8.5
    tenure_months: int
    disbursal_date: date
    emi_amount: Money                    # Origination EMI
    state: LoanState
    payments: Tuple[Payment, ...] = ()
    emi_day: int = 1
    first_emi_date: Optional[date] = None
    account_number: Optional[str] = None
    branch_name: Optional[str] = None
    loan_officer: Optional[str] = None
    lender_phone: Optional[str] = None
    lender_email: Optional[str] = None
    color: str = DEFAULT_COLOR           # Display colour in the UI
    notes: Optional[str] = None
    tags: Tuple[str, ...] = ()
    is_active: bool = True               # False once archived
    version: int = 0
    next_sequence: int = 1

    def __post_init__(self):
        if not 1 <= self.emi_day <= 31:
            raise InvalidTermError("EMI day must be between 1 and 31", emi_day=self.emi_day)
        if self.first_emi_date is None:
            object.__setattr__(self, 'first_emi_date', add_months(self.disbursal_date, 1))
        object.__setattr__(self, 'tags', tuple(self.tags))

    @property
    def currency(self) -> Currency:
        return self.principal_amount.currency

    @property
    def status(self) -> LoanStatus:
        return self.state.status

    @property
    def is_closed(self) -> bool:
        return self.state.is_closed

    @property
    def total_interest_payable(self) -> Money:
        """Interest over the contracted tenure at the origination EMI"""
        return total_interest_payable(self.principal_amount, self.emi_amount, self.tenure_months)

    @property
    def completion_pct(self) -> Decimal:
        """Share of the original principal repaid, in percent"""
        repaid = self.principal_amount.amount - self.state.outstanding_principal.amount
        return (repaid / self.principal_amount.amount * Decimal('100')).quantize(Decimal('0.01'))

    @property
    def next_emi_date(self) -> Optional[date]:
        if self.is_closed:
            return None
        return add_months(self.first_emi_date, self.state.paid_emis)

    def age_months(self, as_of: Optional[date] = None) -> int:
        """Whole months elapsed since disbursal"""
        as_of = as_of or date.today()
        months = (as_of.year - self.disbursal_date.year) * 12 + as_of.month - self.disbursal_date.month
        if as_of.day < self.disbursal_date.day:
            months -= 1
        return max(months, 0)

    def baseline(self, safety_limit_months: int = DEFAULT_SAFETY_LIMIT_MONTHS) -> LoanBaseline:
        """Origination baseline every replay of this loan starts from"""
        return LoanBaseline(
            principal=self.principal_amount,
            annual_rate=self.interest_rate,
            tenure_months=self.tenure_months,
            emi_amount=self.emi_amount,
            safety_limit_months=safety_limit_months
        )

    def find_payment(self, payment_id: str) -> Optional[Payment]:
        for payment in self.payments:
            if payment.id == payment_id:
                return payment
        return None


def loan_schedule(
    loan: Loan,
    view: ScheduleView = ScheduleView.REMAINING
) -> List[ScheduleRow]:
    """
    Amortization schedule for a loan.

    The original view amortizes the origination principal at the
    origination EMI from the first EMI date. The remaining view amortizes
    the current outstanding at the current EMI from the next EMI date.
    """
    if view == ScheduleView.ORIGINAL:
        return build_schedule(
            loan.principal_amount,
            loan.interest_rate,
            loan.emi_amount,
            loan.tenure_months,
            loan.first_emi_date
        )

    if loan.is_closed:
        return []
    return build_schedule(
        loan.state.outstanding_principal,
        loan.interest_rate,
        loan.state.current_emi,
        max(loan.state.current_tenure_months, 1),
        loan.next_emi_date
    )


class LoanManager:
    """
    Manages the loan lifecycle and serializes every write per loan.

    Writes to one loan hold that loan's lock for the whole
    load-replay-save cycle, and the save is a compare-and-set on the loan's
    version so a writer in another process cannot be silently overwritten.
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        safety_limit_months: int = DEFAULT_SAFETY_LIMIT_MONTHS,
        default_currency: Currency = Currency.INR
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.safety_limit_months = safety_limit_months
        self.default_currency = default_currency

        self.loans_table = "loans"
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Origination and reads
    # ------------------------------------------------------------------

    def create_loan(
        self,
        name: str,
        loan_type: LoanType,
        lender: str,
        principal_amount: Money,
        interest_rate,
        tenure_months: int,
        disbursal_date: date,
        emi_day: int = 1,
        first_emi_date: Optional[date] = None,
        account_number: Optional[str] = None,
        notes: Optional[str] = None,
        tags: Iterable[str] = (),
        branch_name: Optional[str] = None,
        loan_officer: Optional[str] = None,
        lender_phone: Optional[str] = None,
        lender_email: Optional[str] = None,
        color: str = DEFAULT_COLOR
    ) -> Loan:
        """
        Originate a loan and compute its EMI

        Raises:
            InvalidTermError: non-positive principal or tenure, negative rate
        """
        interest_rate = to_rate(interest_rate)
        self.check_tenure(tenure_months)
        baseline = LoanBaseline.from_terms(
            principal_amount, interest_rate, tenure_months, self.safety_limit_months
        )

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            loan_type=loan_type,
            lender=lender,
            principal_amount=principal_amount,
            interest_rate=interest_rate,
            tenure_months=tenure_months,
            disbursal_date=disbursal_date,
            emi_amount=baseline.emi_amount,
            state=baseline.initial_state(),
            emi_day=emi_day,
            first_emi_date=first_emi_date,
            account_number=account_number,
            branch_name=branch_name,
            loan_officer=loan_officer,
            lender_phone=lender_phone,
            lender_email=lender_email,
            color=color,
            notes=notes,
            tags=tuple(tags),
            version=1
        )

        self._persist(loan, expected_version=0, events=[(
            AuditEventType.LOAN_CREATED,
            {
                "principal_amount": principal_amount,
                "interest_rate": interest_rate,
                "tenure_months": tenure_months,
                "emi_amount": baseline.emi_amount,
                "disbursal_date": disbursal_date,
            }
        )])

        log_action(logger, "info", f"Loan originated with EMI {baseline.emi_amount.to_string()}",
                   action="create_loan", loan_id=loan.id)
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        loan_dict = self.storage.load(self.loans_table, loan_id)
        if loan_dict:
            return self._loan_from_dict(loan_dict)
        return None

    def list_loans(
        self,
        status: Optional[LoanStatus] = None,
        loan_type: Optional[LoanType] = None,
        include_archived: bool = False
    ) -> List[Loan]:
        """List loans, most recently disbursed first"""
        filters: Dict[str, Any] = {}
        if not include_archived:
            filters['is_active'] = True
        if loan_type:
            filters['loan_type'] = loan_type.value

        loans = [self._loan_from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        if status:
            loans = [loan for loan in loans if loan.status == status]

        loans.sort(key=lambda loan: loan.disbursal_date, reverse=True)
        return loans

    def get_schedule(self, loan_id: str, view: ScheduleView = ScheduleView.REMAINING) -> List[ScheduleRow]:
        """Get the original or remaining amortization schedule for a loan"""
        return loan_schedule(self._require_loan(loan_id), view)

    def summarize(self, loan_ids: Optional[Iterable[str]] = None) -> PortfolioSummary:
        """
        Portfolio summary over the given loans, or over every loan that has
        not been archived when no IDs are given.
        """
        if loan_ids is None:
            loans = self.list_loans()
        else:
            loans = [self._require_loan(loan_id) for loan_id in loan_ids]
        return summarize(loans, self.default_currency)

    def verify_ledger(self, loan_id: str) -> Loan:
        """
        Replay a stored loan and check the cached state matches.

        Raises:
            LedgerCorruptionError: replay fails or disagrees with stored values
        """
        loan = self._require_loan(loan_id)
        result = self._replay_stored(loan, loan.payments)
        if result.state != loan.state or result.payments != tuple(
            sorted(loan.payments, key=lambda p: p.ordering_key)
        ):
            error = LoanEngineError("Stored derived state differs from replay")
            log_action(logger, "error", "Ledger verification failed",
                       action="verify_ledger", loan_id=loan.id)
            raise LedgerCorruptionError(loan.id, error)
        return loan

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_loan(self, loan_id: str, expected_version: Optional[int] = None, **changes) -> Loan:
        """
        Edit a loan.

        Descriptive fields are updated in place. Changing principal, rate,
        tenure or disbursal date regenerates the origination EMI and replays
        every payment against the new baseline; if the existing payments do
        not fit the new terms the edit is rejected unchanged.
        """
        unknown = set(changes) - DESCRIPTIVE_FIELDS - TERM_FIELDS
        if unknown:
            raise InvalidTermError("Unknown loan fields", fields=sorted(unknown))
        cleared = sorted(k for k, v in changes.items() if v is None and k not in NULLABLE_FIELDS)
        if cleared:
            raise InvalidTermError("Required loan fields cannot be cleared", fields=cleared)

        with self._loan_lock(loan_id):
            loan = self._require_loan(loan_id, expected_version)

            if 'interest_rate' in changes:
                changes['interest_rate'] = to_rate(changes['interest_rate'])
            if 'tags' in changes:
                changes['tags'] = tuple(changes['tags'] or ())
            if ('disbursal_date' in changes and 'first_emi_date' not in changes
                    and changes['disbursal_date'] != loan.disbursal_date):
                changes['first_emi_date'] = add_months(changes['disbursal_date'], 1)

            term_changes = {k: v for k, v in changes.items()
                            if k in TERM_FIELDS and getattr(loan, k) != v}
            updated = replace(loan, **changes)
            events = []

            if term_changes:
                if 'principal_amount' in term_changes and updated.principal_amount.currency != loan.currency:
                    raise InvalidTermError("Loan currency cannot change",
                                           currency=updated.principal_amount.currency.code)
                self.check_tenure(updated.tenure_months)
                baseline = LoanBaseline.from_terms(
                    updated.principal_amount, updated.interest_rate,
                    updated.tenure_months, self.safety_limit_months
                )
                # Payments already short on interest stay as recorded; no new shortfall may appear
                result = self._replay_candidate(loan, baseline, loan.payments, {
                    p.id for p in loan.payments if p.interest_shortfall is None
                })
                updated = replace(
                    updated,
                    emi_amount=baseline.emi_amount,
                    state=result.state,
                    payments=result.payments
                )
                events.append((AuditEventType.LOAN_TERMS_CHANGED, {
                    "changes": {k: getattr(updated, k) for k in term_changes},
                    "emi_amount": baseline.emi_amount,
                }))
                events.extend(self._status_events(loan, updated))
            else:
                events.append((AuditEventType.LOAN_UPDATED, {"fields": sorted(changes)}))

            updated = self._next_version(loan, updated)
            self._persist(updated, expected_version=loan.version, events=events)

        log_action(logger, "info", "Loan updated", action="update_loan", loan_id=loan_id,
                   extra={"fields": sorted(changes), "terms_changed": bool(term_changes)})
        return updated

    def archive_loan(self, loan_id: str, expected_version: Optional[int] = None) -> Loan:
        """Soft-delete a loan: it stays stored but drops out of lists and summaries"""
        with self._loan_lock(loan_id):
            loan = self._require_loan(loan_id, expected_version)
            updated = self._next_version(loan, replace(loan, is_active=False))
            self._persist(updated, expected_version=loan.version,
                          events=[(AuditEventType.LOAN_ARCHIVED, {})])

        log_action(logger, "info", "Loan archived", action="archive_loan", loan_id=loan_id)
        return updated

    def record_payment(
        self,
        loan_id: str,
        payment_type: PaymentType,
        amount: Money,
        payment_date: date,
        prepayment_action: Optional[PrepaymentAction] = None,
        notes: Optional[str] = None,
        receipt_number: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> Loan:
        """
        Record a payment and return the updated loan.

        The new payment is slotted into the ledger by date (backdated
        payments re-interest everything after them) and the whole ledger is
        replayed. Nothing is persisted if the replay fails.

        Raises:
            LoanClosedError: the loan is closed
            UnderpaymentError: an EMI below the interest due
            OverpaymentError: a prepayment above the outstanding principal
        """
        with self._loan_lock(loan_id):
            loan = self._require_loan(loan_id, expected_version)
            if loan.is_closed:
                raise LoanClosedError(loan.id)
            if amount.currency != loan.currency:
                raise InvalidPaymentError("Payment currency must match loan currency",
                                          currency=amount.currency.code,
                                          loan_currency=loan.currency.code)

            payment = Payment(
                id=str(uuid.uuid4()),
                payment_type=payment_type,
                amount=amount,
                payment_date=payment_date,
                sequence=loan.next_sequence,
                prepayment_action=prepayment_action,
                notes=notes,
                receipt_number=receipt_number
            )

            result = self._replay_candidate(
                loan, self._baseline(loan), loan.payments + (payment,), {payment.id}
            )
            updated = replace(
                loan,
                state=result.state,
                payments=result.payments,
                next_sequence=loan.next_sequence + 1
            )
            updated = self._next_version(loan, updated)

            applied = updated.find_payment(payment.id)
            events = [(AuditEventType.LOAN_PAYMENT_RECORDED, {
                "payment_id": payment.id,
                "payment_type": payment_type,
                "amount": amount,
                "payment_date": payment_date,
                "principal_component": applied.principal_component,
                "interest_component": applied.interest_component,
                "outstanding_after": applied.outstanding_after,
            })]
            events.extend(self._status_events(loan, updated))
            self._persist(updated, expected_version=loan.version, events=events)

        log_action(logger, "info", f"Recorded {payment_type.value} payment of {amount.to_string()}",
                   action="record_payment", loan_id=loan_id, payment_id=payment.id,
                   extra={"outstanding": str(updated.state.outstanding_principal.amount)})
        return updated

    def delete_payment(self, loan_id: str, payment_id: str, expected_version: Optional[int] = None) -> Loan:
        """
        Remove a payment and rebuild the loan by replaying the rest.

        A closed loan reopens if the removed payment was what closed it. If
        a later EMI no longer covers the interest on the restored balance it
        is kept as an interest-only payment with its interest_shortfall set.

        Raises:
            PaymentNotFoundError: the payment is not on this loan
            LedgerCorruptionError: the remaining stored payments fail to replay
        """
        with self._loan_lock(loan_id):
            loan = self._require_loan(loan_id, expected_version)
            removed = loan.find_payment(payment_id)
            if removed is None:
                raise PaymentNotFoundError(loan_id, payment_id)

            remaining = tuple(p for p in loan.payments if p.id != payment_id)
            result = self._replay_stored(loan, remaining)
            updated = self._next_version(loan, replace(loan, state=result.state, payments=result.payments))

            events = [(AuditEventType.LOAN_PAYMENT_DELETED, {
                "payment_id": payment_id,
                "payment_type": removed.payment_type,
                "amount": removed.amount,
                "payment_date": removed.payment_date,
            })]
            shortfalls = [p.id for p in result.payments if p.interest_shortfall is not None]
            events.extend(self._status_events(loan, updated))
            self._persist(updated, expected_version=loan.version, events=events)

        log_action(logger, "info", "Deleted payment and replayed ledger",
                   action="delete_payment", loan_id=loan_id, payment_id=payment_id)
        if shortfalls:
            log_action(logger, "warning", "EMIs no longer cover interest after deletion",
                       action="delete_payment", loan_id=loan_id, payment_id=payment_id,
                       extra={"short_payments": shortfalls})
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _loan_lock(self, loan_id: str):
        # Loans are never hard-deleted, so only stored IDs get a lock
        if not self.storage.exists(self.loans_table, loan_id):
            raise LoanNotFoundError(loan_id)
        with self._locks_guard:
            lock = self._locks.setdefault(loan_id, threading.RLock())
        with lock:
            yield

    def check_tenure(self, tenure_months: int) -> None:
        """
        Reject tenures above the schedule safety limit

        Raises:
            InvalidTermError: tenure_months exceeds safety_limit_months
        """
        if tenure_months > self.safety_limit_months:
            raise InvalidTermError("Tenure exceeds the schedule safety limit",
                                   tenure_months=tenure_months,
                                   limit=self.safety_limit_months)

    def _baseline(self, loan: Loan) -> LoanBaseline:
        return loan.baseline(self.safety_limit_months)

    def _require_loan(self, loan_id: str, expected_version: Optional[int] = None) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise LoanNotFoundError(loan_id)
        if expected_version is not None and loan.version != expected_version:
            raise ConcurrentModificationError(loan_id, expected_version)
        return loan

    def _replay_candidate(self, loan: Loan, baseline: LoanBaseline, payments, strict_payment_ids) -> LedgerResult:
        """Replay a proposed ledger; failures are the caller's input errors"""
        try:
            return replay(baseline, payments, strict_payment_ids)
        except LoanClosedError:
            # A backdated payment closed the loan ahead of later payments
            raise LoanClosedError(loan.id) from None

    def _replay_stored(self, loan: Loan, payments) -> LedgerResult:
        """Replay payments that were all previously accepted; failure means corruption"""
        try:
            return replay(self._baseline(loan), payments, strict_payment_ids=())
        except LoanEngineError as e:
            log_action(logger, "error", f"Replay of stored ledger failed: {e}",
                       action="replay", loan_id=loan.id, extra=e.details)
            raise LedgerCorruptionError(loan.id, e) from e

    @staticmethod
    def _next_version(loan: Loan, updated: Loan) -> Loan:
        return replace(updated, version=loan.version + 1, updated_at=datetime.now(timezone.utc))

    @staticmethod
    def _status_events(before: Loan, after: Loan) -> List[Tuple[AuditEventType, Dict[str, Any]]]:
        if not before.is_closed and after.is_closed:
            return [(AuditEventType.LOAN_CLOSED, {"closed_date": after.state.closed_date})]
        if before.is_closed and not after.is_closed:
            return [(AuditEventType.LOAN_REOPENED, {
                "outstanding_principal": after.state.outstanding_principal
            })]
        return []

    def _persist(
        self,
        loan: Loan,
        expected_version: int,
        events: List[Tuple[AuditEventType, Dict[str, Any]]]
    ) -> None:
        """Write the loan and its audit events in one atomic unit"""
        with self.storage.atomic():
            saved = self.storage.save_versioned(
                self.loans_table, loan.id, self._loan_to_dict(loan), expected_version
            )
            if not saved:
                raise ConcurrentModificationError(loan.id, expected_version)

            if self.audit_trail:
                for event_type, metadata in events:
                    self.audit_trail.log_event(
                        event_type=event_type,
                        entity_type="loan",
                        entity_id=loan.id,
                        metadata=dict(metadata, version=loan.version)
                    )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def _money_str(value: Optional[Money]) -> Optional[str]:
        return str(value.amount) if value is not None else None

    @staticmethod
    def _date_str(value: Optional[date]) -> Optional[str]:
        return value.isoformat() if value else None

    def _state_to_dict(self, state: LoanState) -> Dict[str, Any]:
        return {
            'outstanding_principal': self._money_str(state.outstanding_principal),
            'current_emi': self._money_str(state.current_emi),
            'current_tenure_months': state.current_tenure_months,
            'paid_emis': state.paid_emis,
            'total_principal_paid': self._money_str(state.total_principal_paid),
            'total_interest_paid': self._money_str(state.total_interest_paid),
            'total_prepaid': self._money_str(state.total_prepaid),
            'total_paid_amount': self._money_str(state.total_paid_amount),
            'status': state.status.value,
            'last_payment_date': self._date_str(state.last_payment_date),
            'closed_date': self._date_str(state.closed_date),
        }

    def _payment_to_dict(self, payment: Payment) -> Dict[str, Any]:
        return {
            'id': payment.id,
            'payment_type': payment.payment_type.value,
            'amount': self._money_str(payment.amount),
            'payment_date': payment.payment_date.isoformat(),
            'sequence': payment.sequence,
            'prepayment_action': payment.prepayment_action.value if payment.prepayment_action else None,
            'notes': payment.notes,
            'receipt_number': payment.receipt_number,
            'principal_component': self._money_str(payment.principal_component),
            'interest_component': self._money_str(payment.interest_component),
            'outstanding_after': self._money_str(payment.outstanding_after),
            'emi_number': payment.emi_number,
            'new_emi': self._money_str(payment.new_emi),
            'tenure_saved_months': payment.tenure_saved_months,
            'interest_shortfall': self._money_str(payment.interest_shortfall),
        }

    def _loan_to_dict(self, loan: Loan) -> Dict[str, Any]:
        """Convert loan to dictionary"""
        result = loan.base_dict()
        result.update({
            'name': loan.name,
            'loan_type': loan.loan_type.value,
            'lender': loan.lender,
            'currency': loan.currency.code,
            'principal_amount': self._money_str(loan.principal_amount),
            'interest_rate': str(loan.interest_rate),
            'tenure_months': loan.tenure_months,
            'disbursal_date': loan.disbursal_date.isoformat(),
            'emi_amount': self._money_str(loan.emi_amount),
            'emi_day': loan.emi_day,
            'first_emi_date': self._date_str(loan.first_emi_date),
            'account_number': loan.account_number,
            'branch_name': loan.branch_name,
            'loan_officer': loan.loan_officer,
            'lender_phone': loan.lender_phone,
            'lender_email': loan.lender_email,
            'color': loan.color,
            'notes': loan.notes,
            'tags': list(loan.tags),
            'is_active': loan.is_active,
            'version': loan.version,
            'next_sequence': loan.next_sequence,
            'status': loan.status.value,
            'state': self._state_to_dict(loan.state),
            'payments': [self._payment_to_dict(p) for p in loan.payments],
        })
        return result

    def _loan_from_dict(self, data: Dict[str, Any]) -> Loan:
        """Convert dictionary to loan"""
        currency = Currency[data['currency']]

        def money(value: Optional[str]) -> Optional[Money]:
            return Money(Decimal(value), currency) if value is not None else None

        def get_date(value: Optional[str]) -> Optional[date]:
            return date.fromisoformat(value) if value else None

        state_data = data['state']
        state = LoanState(
            outstanding_principal=money(state_data['outstanding_principal']),
            current_emi=money(state_data['current_emi']),
            current_tenure_months=state_data['current_tenure_months'],
            paid_emis=state_data['paid_emis'],
            total_principal_paid=money(state_data['total_principal_paid']),
            total_interest_paid=money(state_data['total_interest_paid']),
            total_prepaid=money(state_data['total_prepaid']),
            total_paid_amount=money(state_data['total_paid_amount']),
            status=LoanStatus(state_data['status']),
            last_payment_date=get_date(state_data.get('last_payment_date')),
            closed_date=get_date(state_data.get('closed_date'))
        )

        payments = tuple(
            Payment(
                id=p['id'],
                payment_type=PaymentType(p['payment_type']),
                amount=money(p['amount']),
                payment_date=date.fromisoformat(p['payment_date']),
                sequence=p['sequence'],
                prepayment_action=PrepaymentAction(p['prepayment_action']) if p.get('prepayment_action') else None,
                notes=p.get('notes'),
                receipt_number=p.get('receipt_number'),
                principal_component=money(p.get('principal_component')),
                interest_component=money(p.get('interest_component')),
                outstanding_after=money(p.get('outstanding_after')),
                emi_number=p.get('emi_number'),
                new_emi=money(p.get('new_emi')),
                tenure_saved_months=p.get('tenure_saved_months'),
                interest_shortfall=money(p.get('interest_shortfall'))
            )
            for p in data.get('payments', [])
        )

        return Loan(
            id=data['id'],
            name=data['name'],
            loan_type=LoanType(data['loan_type']),
            lender=data['lender'],
            principal_amount=money(data['principal_amount']),
            interest_rate=Decimal(data['interest_rate']),
            tenure_months=data['tenure_months'],
            disbursal_date=date.fromisoformat(data['disbursal_date']),
            emi_amount=money(data['emi_amount']),
            state=state,
            payments=payments,
            emi_day=data.get('emi_day', 1),
            first_emi_date=get_date(data.get('first_emi_date')),
            account_number=data.get('account_number'),
            branch_name=data.get('branch_name'),
            loan_officer=data.get('loan_officer'),
            lender_phone=data.get('lender_phone'),
            lender_email=data.get('lender_email'),
            color=data.get('color', DEFAULT_COLOR),
            notes=data.get('notes'),
            tags=tuple(data.get('tags') or ()),
            is_active=data.get('is_active', True),
            version=data.get('version', 0),
            next_sequence=data.get('next_sequence', len(payments) + 1),
            **StorageRecord.parse_timestamps(data)
        )

"""
Loan endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .dependencies import LoanSystem, get_loan_system
from .schemas import (
    CalculateEmiRequest, CreateLoanRequest, RecordPaymentRequest, UpdateLoanRequest,
    loan_to_response, parse_rate, quote_to_response, row_to_response, summary_to_response
)
from ..ledger import LoanStatus, PaymentType, PrepaymentAction
from ..loans import LoanType, ScheduleView
from ..schedule import quote_emi


router = APIRouter()


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _bad_request(e: Exception) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


@router.post("/calculate-emi")
async def calculate_emi(
    request: CalculateEmiRequest,
    system: LoanSystem = Depends(get_loan_system)
):
    """Preview EMI, totals and schedule for prospective terms"""
    system.loan_manager.check_tenure(request.tenure_months)
    try:
        principal = request.principal_amount.to_money()
        rate = parse_rate(request.interest_rate)
        first_emi_date = _parse_date(request.first_emi_date)
    except (ValueError, KeyError) as e:
        raise _bad_request(e)

    quote = quote_emi(principal, rate, request.tenure_months, first_emi_date)
    return quote_to_response(quote)


@router.get("/summary")
async def get_summary(
    ids: Optional[str] = Query(None, description="Comma-separated loan IDs"),
    system: LoanSystem = Depends(get_loan_system)
):
    """Portfolio summary across loans"""
    loan_ids = [i.strip() for i in ids.split(",") if i.strip()] if ids else None
    summary = system.loan_manager.summarize(loan_ids)
    return summary_to_response(summary)


@router.get("")
async def list_loans(
    status: Optional[str] = None,
    loan_type: Optional[str] = None,
    include_archived: bool = False,
    system: LoanSystem = Depends(get_loan_system)
):
    """List loans"""
    try:
        status_filter = LoanStatus(status) if status else None
        type_filter = LoanType(loan_type) if loan_type else None
    except ValueError as e:
        raise _bad_request(e)

    loans = system.loan_manager.list_loans(
        status=status_filter,
        loan_type=type_filter,
        include_archived=include_archived
    )
    return {"loans": [loan_to_response(loan) for loan in loans]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LoanSystem = Depends(get_loan_system)
):
    """Add a loan and compute its EMI"""
    try:
        loan_type = LoanType(request.loan_type)
        principal = request.principal_amount.to_money()
        rate = parse_rate(request.interest_rate)
        disbursal_date = date.fromisoformat(request.disbursal_date)
        first_emi_date = _parse_date(request.first_emi_date)
    except (ValueError, KeyError) as e:
        raise _bad_request(e)

    loan = system.loan_manager.create_loan(
        name=request.name,
        loan_type=loan_type,
        lender=request.lender,
        principal_amount=principal,
        interest_rate=rate,
        tenure_months=request.tenure_months,
        disbursal_date=disbursal_date,
        emi_day=request.emi_day,
        first_emi_date=first_emi_date,
        account_number=request.account_number,
        branch_name=request.branch_name,
        loan_officer=request.loan_officer,
        lender_phone=request.lender_phone,
        lender_email=request.lender_email,
        color=request.color,
        notes=request.notes,
        tags=request.tags
    )
    return loan_to_response(loan)


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LoanSystem = Depends(get_loan_system)
):
    """Get loan details with its payments"""
    loan = system.loan_manager.get_loan(loan_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return loan_to_response(loan)


@router.put("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    system: LoanSystem = Depends(get_loan_system)
):
    """Edit descriptive fields or loan terms"""
    fields = request.model_dump(exclude_unset=True)
    expected_version = fields.pop("expected_version", None)

    # Explicit nulls pass through; the manager rejects them for required fields
    try:
        if fields.get("loan_type") is not None:
            fields["loan_type"] = LoanType(fields["loan_type"])
        if request.principal_amount is not None:
            fields["principal_amount"] = request.principal_amount.to_money()
        if fields.get("interest_rate") is not None:
            fields["interest_rate"] = parse_rate(fields["interest_rate"])
        for key in ("disbursal_date", "first_emi_date"):
            if key in fields:
                fields[key] = _parse_date(fields[key])
    except (ValueError, KeyError) as e:
        raise _bad_request(e)

    loan = system.loan_manager.update_loan(loan_id, expected_version=expected_version, **fields)
    return loan_to_response(loan)


@router.delete("/{loan_id}")
async def archive_loan(
    loan_id: str,
    system: LoanSystem = Depends(get_loan_system)
):
    """Archive a loan"""
    loan = system.loan_manager.archive_loan(loan_id)
    return {
        "loan_id": loan.id,
        "is_active": loan.is_active,
        "message": "Loan archived successfully"
    }


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(
    loan_id: str,
    view: str = "remaining",
    system: LoanSystem = Depends(get_loan_system)
):
    """Get the remaining or original amortization schedule"""
    try:
        schedule_view = ScheduleView(view)
    except ValueError as e:
        raise _bad_request(e)

    schedule = system.loan_manager.get_schedule(loan_id, schedule_view)
    return {
        "loan_id": loan_id,
        "view": schedule_view.value,
        "schedule": [row_to_response(row) for row in schedule]
    }


@router.post("/{loan_id}/payments", status_code=status.HTTP_201_CREATED)
async def record_payment(
    loan_id: str,
    request: RecordPaymentRequest,
    system: LoanSystem = Depends(get_loan_system)
):
    """Record an EMI, prepayment or part payment"""
    try:
        payment_type = PaymentType(request.payment_type)
        action = PrepaymentAction(request.prepayment_action) if request.prepayment_action else None
        amount = request.amount.to_money()
        payment_date = date.fromisoformat(request.payment_date)
    except (ValueError, KeyError) as e:
        raise _bad_request(e)

    loan = system.loan_manager.record_payment(
        loan_id,
        payment_type=payment_type,
        amount=amount,
        payment_date=payment_date,
        prepayment_action=action,
        notes=request.notes,
        receipt_number=request.receipt_number,
        expected_version=request.expected_version
    )
    return loan_to_response(loan)


@router.delete("/{loan_id}/payments/{payment_id}")
async def delete_payment(
    loan_id: str,
    payment_id: str,
    system: LoanSystem = Depends(get_loan_system)
):
    """Delete a payment and replay the ledger"""
    loan = system.loan_manager.delete_payment(loan_id, payment_id)
    return loan_to_response(loan)


@router.get("/{loan_id}/audit")
async def get_loan_audit(
    loan_id: str,
    limit: Optional[int] = None,
    system: LoanSystem = Depends(get_loan_system)
):
    """Audit events for a loan, oldest first"""
    if not system.loan_manager.get_loan(loan_id):
        raise HTTPException(status_code=404, detail="Loan not found")
    if not system.audit_trail:
        return {"loan_id": loan_id, "events": []}

    events = system.audit_trail.get_events_for_entity("loan", loan_id, limit)
    return {
        "loan_id": loan_id,
        "events": [
            {
                "id": event.id,
                "event_type": event.event_type.value,
                "created_at": event.created_at.isoformat(),
                "metadata": {k: v for k, v in event.metadata.items() if not k.startswith("_")},
                "current_hash": event.current_hash,
            }
            for event in events
        ]
    }

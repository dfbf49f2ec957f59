"""
Obligation endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from .schemas import (
    CreateObligationRequest, PaymentRequest, DueDateRequest, MoneyModel,
    obligation_to_dict, installment_to_dict, transaction_to_dict,
    payment_to_dict, postings_to_list
)
from .system import BranchFinanceSystem, get_system, require_user_id
from ..models import ObligationKind, ObligationStatus


router = APIRouter()
branches_router = APIRouter()


def _parse_enum(enum_cls, value: str, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise HTTPException(status_code=422, detail=f"Invalid {field_name} '{value}', expected one of: {allowed}")


def _obligation_view(system: BranchFinanceSystem, obligation, include_installments: bool = True):
    manager = system.obligation_manager
    return obligation_to_dict(
        obligation,
        manager.remaining_balance(obligation),
        manager.progress_percent(obligation),
        include_installments=include_installments
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_obligation(
    request: CreateObligationRequest,
    user_id: str = Depends(require_user_id),
    system: BranchFinanceSystem = Depends(get_system)
):
    """Originate a loan or payment plan with its installment schedule"""
    obligation = system.obligation_manager.create_obligation(
        kind=_parse_enum(ObligationKind, request.kind, "kind"),
        branch_id=request.branch_id,
        counterparty_name=request.counterparty_name,
        principal_amount=request.principal_amount,
        installment_count=request.installment_count,
        start_date=request.start_date,
        acting_user_id=user_id,
        down_payment=request.down_payment,
        interest_rate_percent_total=request.interest_rate_percent_total,
        already_paid_count=request.already_paid_count,
        description=request.description,
        notes=request.notes,
        tax_obligation_id=request.tax_obligation_id,
        record_disbursement=request.record_disbursement
    )
    return _obligation_view(system, obligation)


@router.get("")
async def list_obligations(
    branch_id: str,
    status: Optional[str] = None,
    kind: Optional[str] = None,
    system: BranchFinanceSystem = Depends(get_system)
):
    """List a branch's obligations, newest first"""
    obligations = system.obligation_manager.list_obligations(
        branch_id,
        status=_parse_enum(ObligationStatus, status, "status") if status else None,
        kind=_parse_enum(ObligationKind, kind, "kind") if kind else None
    )
    return {
        "obligations": [_obligation_view(system, o, include_installments=False) for o in obligations]
    }


@router.get("/{obligation_id}")
async def get_obligation(
    obligation_id: str,
    system: BranchFinanceSystem = Depends(get_system)
):
    """Get obligation details with its installments"""
    obligation = system.obligation_manager.get_obligation(obligation_id)
    if not obligation:
        raise HTTPException(status_code=404, detail="Obligation not found")
    return _obligation_view(system, obligation)


@router.post("/{obligation_id}/installments/{installment_id}/payments")
async def pay_installment(
    obligation_id: str,
    installment_id: str,
    request: PaymentRequest,
    user_id: str = Depends(require_user_id),
    idempotency_key: Optional[str] = Header(None),
    system: BranchFinanceSystem = Depends(get_system)
):
    """Apply a payment to one installment"""
    result = system.obligation_manager.apply_payment(
        obligation_id=obligation_id,
        installment_id=installment_id,
        amount=request.amount,
        acting_user_id=user_id,
        payment_date=request.payment_date,
        payment_origin=request.payment_origin,
        idempotency_key=idempotency_key,
        expected_version=request.expected_version
    )
    return {
        "payment_id": result.payment.id,
        "replayed": result.replayed,
        "capital_paid": MoneyModel.from_money(result.payment.capital_paid).dict(),
        "interest_paid": MoneyModel.from_money(result.payment.interest_paid).dict(),
        "installment": installment_to_dict(result.installment),
        "obligation_status": result.obligation.status.value if result.obligation else None,
        "postings": postings_to_list(result.postings)
    }


@router.patch("/{obligation_id}/installments/{installment_id}/due-date")
async def edit_due_date(
    obligation_id: str,
    installment_id: str,
    request: DueDateRequest,
    user_id: str = Depends(require_user_id),
    system: BranchFinanceSystem = Depends(get_system)
):
    """Move an unpaid payment-plan installment to a new due date"""
    installment = system.obligation_manager.edit_due_date(
        obligation_id, installment_id, request.due_date, user_id
    )
    return installment_to_dict(installment)


@router.post("/{obligation_id}/default")
async def mark_defaulted(
    obligation_id: str,
    user_id: str = Depends(require_user_id),
    system: BranchFinanceSystem = Depends(get_system)
):
    obligation = system.obligation_manager.mark_defaulted(obligation_id, user_id)
    return {"id": obligation.id, "status": obligation.status.value}


@router.post("/{obligation_id}/cancel")
async def cancel_obligation(
    obligation_id: str,
    user_id: str = Depends(require_user_id),
    system: BranchFinanceSystem = Depends(get_system)
):
    obligation = system.obligation_manager.cancel_obligation(obligation_id, user_id)
    return {"id": obligation.id, "status": obligation.status.value}


@router.get("/{obligation_id}/ledger")
async def get_ledger(
    obligation_id: str,
    system: BranchFinanceSystem = Depends(get_system)
):
    """Ledger entries produced for an obligation"""
    transactions = system.obligation_manager.get_ledger_transactions(obligation_id)
    return {"transactions": [transaction_to_dict(t) for t in transactions]}


@router.get("/{obligation_id}/payments")
async def get_payments(
    obligation_id: str,
    system: BranchFinanceSystem = Depends(get_system)
):
    payments = system.obligation_manager.get_payments(obligation_id)
    return {"payments": [payment_to_dict(p) for p in payments]}


@branches_router.get("/{branch_id}/summary")
async def branch_summary(
    branch_id: str,
    kind: Optional[str] = None,
    as_of: Optional[date] = None,
    system: BranchFinanceSystem = Depends(get_system)
):
    """Outstanding debt totals of a branch"""
    summary = system.obligation_manager.branch_summary(
        branch_id,
        kind=_parse_enum(ObligationKind, kind, "kind") if kind else None,
        as_of=as_of
    )
    return {
        "branch_id": summary.branch_id,
        "total_outstanding": MoneyModel.from_money(summary.total_outstanding).dict(),
        "active_count": summary.active_count,
        "completed_count": summary.completed_count,
        "overdue_installments": summary.overdue_installments
    }

"""
Pydantic schemas for API requests and responses

Amounts travel as decimal strings so no precision is lost to floats.
"""

from datetime import date
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field

from ..currency import Money
from ..models import Obligation, Installment, LedgerTransaction, PaymentRecord


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (ARS, USD, EUR)")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


class CreateObligationRequest(BaseModel):
    kind: str = Field(..., description="loan or payment_plan")
    branch_id: str
    counterparty_name: str
    principal_amount: str = Field(..., description="Decimal amount as string")
    installment_count: int
    start_date: date
    down_payment: Optional[str] = None
    interest_rate_percent_total: str = "0"
    already_paid_count: int = 0
    description: str = ""
    notes: Optional[str] = None
    tax_obligation_id: Optional[str] = None
    record_disbursement: Optional[bool] = None


class PaymentRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    payment_date: Optional[date] = None
    payment_origin: Optional[str] = None
    expected_version: Optional[int] = None


class DueDateRequest(BaseModel):
    due_date: date


def installment_to_dict(installment: Installment, as_of: Optional[date] = None) -> Dict[str, Any]:
    as_of = as_of or date.today()
    return {
        "id": installment.id,
        "installment_number": installment.installment_number,
        "due_date": installment.due_date.isoformat(),
        "capital_amount": MoneyModel.from_money(installment.capital_amount).dict(),
        "interest_amount": MoneyModel.from_money(installment.interest_amount).dict(),
        "total_amount": MoneyModel.from_money(installment.total_amount).dict(),
        "paid_amount": MoneyModel.from_money(installment.paid_amount).dict(),
        "status": installment.status.value,
        "overdue": installment.is_overdue(as_of),
        "paid_at": installment.paid_at.isoformat() if installment.paid_at else None,
        "version": installment.version,
    }


def obligation_to_dict(obligation: Obligation, remaining: Money,
                       progress: Any, include_installments: bool = True) -> Dict[str, Any]:
    result = {
        "id": obligation.id,
        "kind": obligation.kind.value,
        "branch_id": obligation.branch_id,
        "counterparty_name": obligation.counterparty_name,
        "status": obligation.status.value,
        "principal_amount": MoneyModel.from_money(obligation.principal_amount).dict(),
        "down_payment": MoneyModel.from_money(obligation.down_payment).dict(),
        "interest_rate_percent_total": str(obligation.interest_rate_percent_total),
        "installment_count": obligation.installment_count,
        "start_date": obligation.start_date.isoformat(),
        "description": obligation.description,
        "notes": obligation.notes,
        "tax_obligation_id": obligation.tax_obligation_id,
        "remaining_balance": MoneyModel.from_money(remaining).dict(),
        "progress_percent": str(progress),
        "created_at": obligation.created_at.isoformat(),
    }
    if include_installments:
        result["installments"] = [installment_to_dict(i) for i in obligation.installments]
    return result


def transaction_to_dict(transaction: LedgerTransaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "type": transaction.type.value,
        "amount": MoneyModel.from_money(transaction.amount).dict(),
        "concept": transaction.concept,
        "category_group": transaction.category_group.value,
        "accrual_date": transaction.accrual_date.isoformat(),
        "payment_date": transaction.payment_date.isoformat(),
        "documentation_status": transaction.documentation_status.value,
        "payment_origin": transaction.payment_origin,
        "recorded_by": transaction.recorded_by,
        "installment_id": transaction.installment_id,
        "payment_id": transaction.payment_id,
    }


def payment_to_dict(payment: PaymentRecord) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "installment_id": payment.installment_id,
        "amount": MoneyModel.from_money(payment.amount).dict(),
        "capital_paid": MoneyModel.from_money(payment.capital_paid).dict(),
        "interest_paid": MoneyModel.from_money(payment.interest_paid).dict(),
        "payment_date": payment.payment_date.isoformat(),
        "posting_ids": list(payment.posting_ids),
        "recorded_by": payment.recorded_by,
    }


def postings_to_list(postings: List[LedgerTransaction]) -> List[Dict[str, Any]]:
    return [transaction_to_dict(p) for p in postings]

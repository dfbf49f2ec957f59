"""
Obligation Data Model

Obligations (loans and payment plans), their installments, the ledger
transactions produced for them and the payment records that anchor
idempotency. Each record converts itself to and from the plain dictionaries
kept by the storage backends.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum

from .currency import Money, Currency
from .storage import StorageRecord


class ObligationKind(Enum):
    """Debt instrument variants sharing one amortization engine"""
    LOAN = "loan"
    PAYMENT_PLAN = "payment_plan"

    @property
    def capital_category(self) -> 'CategoryGroup':
        """Category group capital repayments are booked under"""
        return {
            ObligationKind.LOAN: CategoryGroup.DEBT,
            ObligationKind.PAYMENT_PLAN: CategoryGroup.TAXES,
        }[self]

    @property
    def installment_documentation(self) -> 'DocumentationStatus':
        """Documentation status of installment postings"""
        return {
            ObligationKind.LOAN: DocumentationStatus.INTERNAL,
            ObligationKind.PAYMENT_PLAN: DocumentationStatus.DOCUMENTED,
        }[self]

    @property
    def allows_due_date_edit(self) -> bool:
        return self == ObligationKind.PAYMENT_PLAN


class ObligationStatus(Enum):
    """Obligation lifecycle states"""
    ACTIVE = "active"
    COMPLETED = "completed"      # Every installment paid
    DEFAULTED = "defaulted"      # Flagged manually, no longer payable
    CANCELLED = "cancelled"      # Flagged manually, no longer payable


class InstallmentStatus(Enum):
    """Stored installment states; "overdue" is derived, never stored"""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"

    @classmethod
    def for_amounts(cls, paid_amount: Money, total_amount: Money) -> 'InstallmentStatus':
        """Status as a pure function of paid amount vs installment total"""
        if paid_amount >= total_amount:
            return cls.PAID
        if paid_amount.is_positive():
            return cls.PARTIAL
        return cls.PENDING


class TransactionType(Enum):
    INCOME = "income"
    EXPENSE = "expense"


class CategoryGroup(Enum):
    """Reporting category groups used by the bookkeeping ledger"""
    DEBT = "DEBT"
    TAXES = "TAXES"
    FINANCIAL_EXPENSE = "FINANCIAL_EXPENSE"


class DocumentationStatus(Enum):
    DOCUMENTED = "documented"
    INTERNAL = "internal"


def _datetime_or_none(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Installment(StorageRecord):
    """One scheduled repayment of an obligation"""
    obligation_id: str
    installment_number: int
    due_date: date
    capital_amount: Money
    interest_amount: Money
    paid_amount: Money = None
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        if self.paid_amount is None:
            self.paid_amount = Money.zero(self.capital_amount.currency)

    @property
    def currency(self) -> Currency:
        return self.capital_amount.currency

    @property
    def total_amount(self) -> Money:
        return self.capital_amount + self.interest_amount

    @property
    def remaining_amount(self) -> Money:
        return self.total_amount - self.paid_amount

    @property
    def capital_share(self) -> Decimal:
        """Fraction of every payment that reduces capital, from the original totals"""
        return self.capital_amount.amount / self.total_amount.amount

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID

    def is_overdue(self, as_of: date) -> bool:
        """Derived view-state: pending and past its due date"""
        return self.status == InstallmentStatus.PENDING and self.due_date < as_of

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            'obligation_id': self.obligation_id,
            'installment_number': self.installment_number,
            'due_date': self.due_date.isoformat(),
            'currency': self.currency.code,
            'capital_amount': str(self.capital_amount.amount),
            'interest_amount': str(self.interest_amount.amount),
            'paid_amount': str(self.paid_amount.amount),
            'status': self.status.value,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'version': self.version,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            obligation_id=data['obligation_id'],
            installment_number=data['installment_number'],
            due_date=date.fromisoformat(data['due_date']),
            capital_amount=Money(Decimal(data['capital_amount']), currency),
            interest_amount=Money(Decimal(data['interest_amount']), currency),
            paid_amount=Money(Decimal(data['paid_amount']), currency),
            status=InstallmentStatus(data['status']),
            paid_at=_datetime_or_none(data.get('paid_at')),
            version=data.get('version', 1),
        )


@dataclass
class Obligation(StorageRecord):
    """A loan or payment plan owed by a branch"""
    kind: ObligationKind
    branch_id: str
    counterparty_name: str
    principal_amount: Money
    interest_rate_percent_total: Decimal  # e.g. Decimal('10') for 10% over the whole term
    installment_count: int
    start_date: date
    down_payment: Money = None
    status: ObligationStatus = ObligationStatus.ACTIVE
    description: str = ""
    notes: Optional[str] = None
    tax_obligation_id: Optional[str] = None
    created_by: Optional[str] = None
    installments: List[Installment] = field(default_factory=list)

    def __post_init__(self):
        if self.down_payment is None:
            self.down_payment = Money.zero(self.principal_amount.currency)

    @property
    def currency(self) -> Currency:
        return self.principal_amount.currency

    @property
    def financed_amount(self) -> Money:
        """Principal left to repay through installments"""
        return self.principal_amount - self.down_payment

    @property
    def is_active(self) -> bool:
        return self.status == ObligationStatus.ACTIVE

    def installment(self, installment_id: str) -> Optional[Installment]:
        for installment in self.installments:
            if installment.id == installment_id:
                return installment
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Storable form; installments are stored in their own table"""
        result = super().to_dict()
        result.update({
            'kind': self.kind.value,
            'branch_id': self.branch_id,
            'counterparty_name': self.counterparty_name,
            'currency': self.currency.code,
            'principal_amount': str(self.principal_amount.amount),
            'down_payment': str(self.down_payment.amount),
            'interest_rate_percent_total': str(self.interest_rate_percent_total),
            'installment_count': self.installment_count,
            'start_date': self.start_date.isoformat(),
            'status': self.status.value,
            'description': self.description,
            'notes': self.notes,
            'tax_obligation_id': self.tax_obligation_id,
            'created_by': self.created_by,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  installments: Optional[List[Installment]] = None) -> 'Obligation':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            kind=ObligationKind(data['kind']),
            branch_id=data['branch_id'],
            counterparty_name=data['counterparty_name'],
            principal_amount=Money(Decimal(data['principal_amount']), currency),
            down_payment=Money(Decimal(data['down_payment']), currency),
            interest_rate_percent_total=Decimal(data['interest_rate_percent_total']),
            installment_count=data['installment_count'],
            start_date=date.fromisoformat(data['start_date']),
            status=ObligationStatus(data['status']),
            description=data.get('description') or "",
            notes=data.get('notes'),
            tax_obligation_id=data.get('tax_obligation_id'),
            created_by=data.get('created_by'),
            installments=sorted(installments or [], key=lambda i: i.installment_number),
        )


@dataclass(frozen=True)
class PostingRequest:
    """An accounting entry to be written by the ledger poster"""
    type: TransactionType
    amount: Money
    concept: str
    category_group: CategoryGroup
    accrual_date: date
    payment_date: date
    documentation_status: DocumentationStatus
    payment_origin: str


@dataclass
class LedgerTransaction(StorageRecord):
    """Bookkeeping entry produced by the engine for the branch ledger"""
    branch_id: str
    type: TransactionType
    amount: Money
    concept: str
    category_group: CategoryGroup
    accrual_date: date
    payment_date: date
    documentation_status: DocumentationStatus
    payment_origin: str
    recorded_by: Optional[str]
    obligation_id: str
    installment_id: Optional[str] = None
    payment_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            'branch_id': self.branch_id,
            'type': self.type.value,
            'amount': str(self.amount.amount),
            'currency': self.amount.currency.code,
            'concept': self.concept,
            'category_group': self.category_group.value,
            'accrual_date': self.accrual_date.isoformat(),
            'payment_date': self.payment_date.isoformat(),
            'documentation_status': self.documentation_status.value,
            'payment_origin': self.payment_origin,
            'recorded_by': self.recorded_by,
            'obligation_id': self.obligation_id,
            'installment_id': self.installment_id,
            'payment_id': self.payment_id,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerTransaction':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            branch_id=data['branch_id'],
            type=TransactionType(data['type']),
            amount=Money(Decimal(data['amount']), Currency[data['currency']]),
            concept=data['concept'],
            category_group=CategoryGroup(data['category_group']),
            accrual_date=date.fromisoformat(data['accrual_date']),
            payment_date=date.fromisoformat(data['payment_date']),
            documentation_status=DocumentationStatus(data['documentation_status']),
            payment_origin=data['payment_origin'],
            recorded_by=data.get('recorded_by'),
            obligation_id=data['obligation_id'],
            installment_id=data.get('installment_id'),
            payment_id=data.get('payment_id'),
        )


@dataclass
class PaymentRecord(StorageRecord):
    """Record of one applied payment, keyed for idempotent replays"""
    idempotency_key: str
    obligation_id: str
    installment_id: str
    amount: Money
    capital_paid: Money
    interest_paid: Money
    payment_date: date
    posting_ids: List[str] = field(default_factory=list)
    recorded_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            'idempotency_key': self.idempotency_key,
            'obligation_id': self.obligation_id,
            'installment_id': self.installment_id,
            'currency': self.amount.currency.code,
            'amount': str(self.amount.amount),
            'capital_paid': str(self.capital_paid.amount),
            'interest_paid': str(self.interest_paid.amount),
            'payment_date': self.payment_date.isoformat(),
            'posting_ids': list(self.posting_ids),
            'recorded_by': self.recorded_by,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentRecord':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            idempotency_key=data['idempotency_key'],
            obligation_id=data['obligation_id'],
            installment_id=data['installment_id'],
            amount=Money(Decimal(data['amount']), currency),
            capital_paid=Money(Decimal(data['capital_paid']), currency),
            interest_paid=Money(Decimal(data['interest_paid']), currency),
            payment_date=date.fromisoformat(data['payment_date']),
            posting_ids=list(data.get('posting_ids') or []),
            recorded_by=data.get('recorded_by'),
        )


@dataclass
class PaymentResult:
    """Outcome of applying (or replaying) one payment"""
    installment: Installment
    postings: List[LedgerTransaction]
    payment: PaymentRecord
    obligation: Optional[Obligation] = None
    replayed: bool = False

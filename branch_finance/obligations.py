"""
Obligation Module

Handles obligation origination, installment payments, due-date edits,
manual status flags and the debt summaries shown per branch. Loans and
payment plans run through the same engine and differ only in how their
postings are tagged and whether due dates may be edited.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import List, Optional, Union
import uuid

from .audit import AuditTrail, AuditEventType
from .completion import CompletionWatcher
from .currency import Money, Currency, fits_precision
from .due_dates import DueDateEditor
from .exceptions import InactiveObligationError, NotFoundError, ValidationError
from .ledger import LedgerPoster
from .logging_config import get_logger, log_action
from .models import (
    Obligation, ObligationKind, ObligationStatus, Installment, LedgerTransaction,
    PaymentRecord, PaymentResult, PostingRequest, TransactionType, CategoryGroup,
    DocumentationStatus
)
from .payments import PaymentApplier
from .schedule import generate_schedule
from .storage import StorageInterface
from .store import ObligationStore


AmountInput = Union[Money, Decimal, str, int]


@dataclass
class BranchDebtSummary:
    """Outstanding debt of a branch across its active obligations"""
    branch_id: str
    total_outstanding: Money
    active_count: int
    completed_count: int
    overdue_installments: int


class ObligationManager:
    """
    Manages obligation lifecycle from origination through settlement
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        currency: Currency = Currency.ARS,
        default_payment_origin: str = "bank_transfer"
    ):
        self.currency = currency
        self.default_payment_origin = default_payment_origin
        self.audit_trail = audit_trail
        self.logger = get_logger("branch_finance.obligations")

        self.store = ObligationStore(storage)
        self.ledger_poster = LedgerPoster(self.store, audit_trail)
        self.payment_applier = PaymentApplier(
            self.store, self.ledger_poster, audit_trail, default_payment_origin
        )
        self.completion_watcher = CompletionWatcher(self.store, audit_trail)
        self.due_date_editor = DueDateEditor(self.store, audit_trail)

    def create_obligation(
        self,
        kind: ObligationKind,
        branch_id: str,
        counterparty_name: str,
        principal_amount: AmountInput,
        installment_count: int,
        start_date: date,
        acting_user_id: str,
        down_payment: Optional[AmountInput] = None,
        interest_rate_percent_total: AmountInput = Decimal('0'),
        already_paid_count: int = 0,
        description: str = "",
        notes: Optional[str] = None,
        tax_obligation_id: Optional[str] = None,
        record_disbursement: Optional[bool] = None
    ) -> Obligation:
        """
        Originate a loan or payment plan with its full installment schedule

        Args:
            kind: LOAN or PAYMENT_PLAN
            branch_id: Branch that owes the debt
            counterparty_name: Lender or creditor
            principal_amount: Total amount owed
            installment_count: Number of monthly installments
            start_date: Start of the obligation; first due date is a month later
            acting_user_id: User creating the obligation
            down_payment: Amount paid up front, booked on start_date
            interest_rate_percent_total: Flat interest over the whole term, in percent
            already_paid_count: Leading installments already paid before the
                obligation was entered (no postings are made for them)
            description: Free-text description
            notes: Free-text notes
            tax_obligation_id: External tax debt refinanced by a payment plan
            record_disbursement: For loans, book the financed amount received
                as income on start_date. Defaults to True for new loans and to
                False when already_paid_count > 0, since a back-filled loan was
                disbursed before it was entered

        Returns:
            Created Obligation with installments

        Raises:
            ValidationError: If any parameter is rejected; nothing is written
        """
        if not branch_id:
            raise ValidationError("Branch id is required")
        if not counterparty_name or not counterparty_name.strip():
            raise ValidationError("Counterparty name is required")
        if not acting_user_id:
            raise ValidationError("Acting user id is required")
        if tax_obligation_id and kind != ObligationKind.PAYMENT_PLAN:
            raise ValidationError("Only payment plans can reference a tax obligation")

        principal = self._to_money(principal_amount, "principal amount")
        down = self._to_money(down_payment, "down payment") if down_payment is not None else Money.zero(self.currency)
        rate = self._to_decimal(interest_rate_percent_total, "interest rate")

        now = datetime.now(timezone.utc)
        obligation_id = str(uuid.uuid4())

        installments = generate_schedule(
            principal=principal,
            down_payment=down,
            rate_percent_total=rate,
            count=installment_count,
            start_date=start_date,
            already_paid_count=already_paid_count,
            obligation_id=obligation_id,
            now=now
        )

        if record_disbursement is None:
            record_disbursement = already_paid_count == 0

        obligation = Obligation(
            id=obligation_id,
            created_at=now,
            updated_at=now,
            kind=kind,
            branch_id=branch_id,
            counterparty_name=counterparty_name.strip(),
            principal_amount=principal,
            interest_rate_percent_total=rate,
            installment_count=installment_count,
            start_date=start_date,
            down_payment=down,
            status=ObligationStatus.ACTIVE,
            description=description.strip() if description else "",
            notes=notes,
            tax_obligation_id=tax_obligation_id,
            created_by=acting_user_id
        )

        with self.store.atomic():
            self.store.create_obligation_with_installments(obligation, installments)

            for request in self._opening_postings(obligation, record_disbursement):
                self.ledger_poster.post(
                    request,
                    branch_id=branch_id,
                    obligation_id=obligation_id,
                    recorded_by=acting_user_id
                )

            self.audit_trail.log_event(
                event_type=AuditEventType.OBLIGATION_CREATED,
                entity_type="obligation",
                entity_id=obligation_id,
                user_id=acting_user_id,
                metadata={
                    "kind": kind,
                    "branch_id": branch_id,
                    "counterparty_name": obligation.counterparty_name,
                    "principal_amount": principal.to_string(),
                    "down_payment": down.to_string(),
                    "interest_rate_percent_total": rate,
                    "installment_count": installment_count,
                    "already_paid_count": already_paid_count,
                    "start_date": start_date
                }
            )

        log_action(
            self.logger, "info", f"Obligation created: {kind.value}",
            user_id=acting_user_id, action="create_obligation",
            resource=f"obligation:{obligation_id}",
            extra={
                "branch_id": branch_id,
                "principal_amount": principal.to_string(),
                "installment_count": installment_count,
                "already_paid_count": already_paid_count
            }
        )

        return obligation

    def apply_payment(
        self,
        obligation_id: str,
        installment_id: str,
        amount: AmountInput,
        acting_user_id: str,
        payment_date: Optional[date] = None,
        payment_origin: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> PaymentResult:
        """
        Pay an installment and settle the obligation when nothing is left

        The payment, its postings and the completion check commit together.

        Raises:
            NotFoundError: Unknown obligation, or installment of another obligation
            ValidationError / OverpaymentError / InactiveObligationError:
                as raised by PaymentApplier
        """
        if not acting_user_id:
            raise ValidationError("Acting user id is required")

        try:
            with self.store.atomic():
                obligation = self._require_obligation(obligation_id)
                installment = self._require_installment(obligation, installment_id)

                result = self.payment_applier.apply_payment(
                    obligation, installment, amount, acting_user_id,
                    payment_date=payment_date,
                    payment_origin=payment_origin,
                    idempotency_key=idempotency_key,
                    expected_version=expected_version
                )
                result.obligation = self.completion_watcher.check(obligation_id, acting_user_id)
        except (ValidationError, InactiveObligationError) as e:
            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_REJECTED,
                entity_type="installment",
                entity_id=installment_id,
                user_id=acting_user_id,
                metadata={"obligation_id": obligation_id, "amount": str(amount), "reason": str(e)}
            )
            raise

        return result

    def edit_due_date(
        self,
        obligation_id: str,
        installment_id: str,
        new_date: date,
        acting_user_id: str
    ) -> Installment:
        """Move one unpaid payment-plan installment to a new due date"""
        if not acting_user_id:
            raise ValidationError("Acting user id is required")

        obligation = self._require_obligation(obligation_id)
        installment = self._require_installment(obligation, installment_id)
        return self.due_date_editor.edit_due_date(obligation, installment, new_date, acting_user_id)

    def mark_defaulted(self, obligation_id: str, acting_user_id: str) -> Obligation:
        """Flag an active obligation as defaulted; it can no longer be paid"""
        return self._flag_status(obligation_id, ObligationStatus.DEFAULTED, acting_user_id)

    def cancel_obligation(self, obligation_id: str, acting_user_id: str) -> Obligation:
        """Flag an active obligation as cancelled; nothing is deleted"""
        return self._flag_status(obligation_id, ObligationStatus.CANCELLED, acting_user_id)

    def get_obligation(self, obligation_id: str) -> Optional[Obligation]:
        """Get obligation by ID, with installments"""
        return self.store.get_obligation(obligation_id)

    def list_obligations(
        self,
        branch_id: str,
        status: Optional[ObligationStatus] = None,
        kind: Optional[ObligationKind] = None
    ) -> List[Obligation]:
        """Get a branch's obligations, newest first"""
        return self.store.list_obligations(branch_id, status=status, kind=kind)

    def get_ledger_transactions(self, obligation_id: str) -> List[LedgerTransaction]:
        self._require_obligation(obligation_id)
        return self.ledger_poster.transactions_for_obligation(obligation_id)

    def get_payments(self, obligation_id: str) -> List[PaymentRecord]:
        self._require_obligation(obligation_id)
        return self.store.list_payments(obligation_id)

    def overdue_installments(self, obligation_id: str, as_of: Optional[date] = None) -> List[Installment]:
        """Pending installments whose due date has passed"""
        as_of = as_of or date.today()
        obligation = self._require_obligation(obligation_id)
        return [i for i in obligation.installments if i.is_overdue(as_of)]

    def remaining_balance(self, obligation: Obligation) -> Money:
        """Capital plus interest still owed across all installments"""
        total = Money.zero(obligation.currency)
        for installment in obligation.installments:
            total = total + installment.remaining_amount
        return total

    def progress_percent(self, obligation: Obligation) -> Decimal:
        """Share of installments fully paid, in percent"""
        paid = sum(1 for i in obligation.installments if i.is_paid)
        percent = Decimal(paid) * Decimal('100') / Decimal(obligation.installment_count)
        return percent.quantize(Decimal('0.01'))

    def branch_summary(
        self,
        branch_id: str,
        kind: Optional[ObligationKind] = None,
        as_of: Optional[date] = None
    ) -> BranchDebtSummary:
        """Totals shown on the branch debt screens"""
        as_of = as_of or date.today()
        obligations = self.store.list_obligations(branch_id, kind=kind)
        active = [o for o in obligations if o.is_active]

        total = Money.zero(self.currency)
        overdue = 0
        for obligation in active:
            total = total + self.remaining_balance(obligation)
            overdue += sum(1 for i in obligation.installments if i.is_overdue(as_of))

        return BranchDebtSummary(
            branch_id=branch_id,
            total_outstanding=total,
            active_count=len(active),
            completed_count=sum(1 for o in obligations if o.status == ObligationStatus.COMPLETED),
            overdue_installments=overdue
        )

    def _opening_postings(self, obligation: Obligation, record_disbursement: bool) -> List[PostingRequest]:
        """Entries booked on the start date when an obligation is created"""
        requests = []

        if obligation.kind == ObligationKind.LOAN and record_disbursement:
            requests.append(PostingRequest(
                type=TransactionType.INCOME,
                amount=obligation.financed_amount,
                concept=f"Loan: {obligation.counterparty_name}",
                category_group=CategoryGroup.DEBT,
                accrual_date=obligation.start_date,
                payment_date=obligation.start_date,
                documentation_status=DocumentationStatus.DOCUMENTED,
                payment_origin=self.default_payment_origin
            ))

        if obligation.down_payment.is_positive():
            label = obligation.description or obligation.counterparty_name
            requests.append(PostingRequest(
                type=TransactionType.EXPENSE,
                amount=obligation.down_payment,
                concept=f"Down payment: {label}",
                category_group=obligation.kind.capital_category,
                accrual_date=obligation.start_date,
                payment_date=obligation.start_date,
                documentation_status=DocumentationStatus.DOCUMENTED,
                payment_origin=self.default_payment_origin
            ))

        return requests

    def _flag_status(self, obligation_id: str, status: ObligationStatus, acting_user_id: str) -> Obligation:
        if not acting_user_id:
            raise ValidationError("Acting user id is required")

        with self.store.atomic():
            obligation = self._require_obligation(obligation_id)
            if not obligation.is_active:
                raise InactiveObligationError(
                    f"Obligation {obligation_id} is {obligation.status.value}, cannot mark {status.value}"
                )

            previous = obligation.status
            obligation = self.store.update_obligation_status(obligation_id, status)
            self.audit_trail.log_event(
                event_type=AuditEventType.OBLIGATION_STATUS_CHANGED,
                entity_type="obligation",
                entity_id=obligation_id,
                user_id=acting_user_id,
                metadata={"previous_status": previous, "new_status": status}
            )

        log_action(
            self.logger, "info", f"Obligation marked {status.value}",
            user_id=acting_user_id, action="flag_obligation",
            resource=f"obligation:{obligation_id}"
        )
        return obligation

    def _require_obligation(self, obligation_id: str) -> Obligation:
        obligation = self.store.get_obligation(obligation_id)
        if not obligation:
            raise NotFoundError(f"Obligation {obligation_id} not found")
        return obligation

    def _require_installment(self, obligation: Obligation, installment_id: str) -> Installment:
        installment = obligation.installment(installment_id)
        if not installment:
            raise NotFoundError(f"Installment {installment_id} not found on obligation {obligation.id}")
        return installment

    def _to_decimal(self, value: AmountInput, field_name: str) -> Decimal:
        if isinstance(value, Money):
            return value.amount
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"Invalid {field_name}: {value!r}")
        if not result.is_finite():
            raise ValidationError(f"Invalid {field_name}: {value!r}")
        return result

    def _to_money(self, value: AmountInput, field_name: str) -> Money:
        """Convert caller input to Money in the engine currency, never rounding"""
        if isinstance(value, Money) and value.currency != self.currency:
            raise ValidationError(
                f"{field_name.capitalize()} currency {value.currency.code} does not match {self.currency.code}"
            )
        amount = self._to_decimal(value, field_name)
        if not fits_precision(amount, self.currency):
            raise ValidationError(
                f"{field_name.capitalize()} {amount} cannot be stored in {self.currency.code} "
                f"with {self.currency.precision} decimal places"
            )
        return Money(amount, self.currency)

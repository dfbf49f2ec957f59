"""
Payment Applier

Applies a payment to one installment. Every payment is split between capital
and interest by the installment's original capital/interest ratio, and each
non-zero component is booked through the ledger poster. The installment
update, its postings and the payment record commit together or not at all.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone, date
from typing import Optional, Tuple, Union
import uuid

from .audit import AuditTrail, AuditEventType
from .currency import Money, fits_precision
from .exceptions import (
    InactiveObligationError, NotFoundError, OverpaymentError, ValidationError
)
from .ledger import LedgerPoster
from .logging_config import get_logger, log_action
from .models import (
    Obligation, Installment, InstallmentStatus, PaymentRecord, PaymentResult,
    PostingRequest, TransactionType, CategoryGroup
)
from .store import ObligationStore


def split_payment(installment: Installment, amount: Money) -> Tuple[Money, Money]:
    """
    Split a payment into (capital, interest) using the installment's fixed
    capital share. The interest part is the remainder, so both parts always
    add up to the amount paid.
    """
    capital_paid = Money(amount.amount * installment.capital_share, amount.currency)
    interest_paid = amount - capital_paid
    return capital_paid, interest_paid


class PaymentApplier:
    """Validates and applies installment payments"""

    def __init__(
        self,
        store: ObligationStore,
        ledger_poster: LedgerPoster,
        audit_trail: AuditTrail,
        default_payment_origin: str = "bank_transfer"
    ):
        self.store = store
        self.ledger_poster = ledger_poster
        self.audit_trail = audit_trail
        self.default_payment_origin = default_payment_origin
        self.logger = get_logger("branch_finance.payments")

    def apply_payment(
        self,
        obligation: Obligation,
        installment: Installment,
        amount: Union[Money, Decimal, str],
        acting_user_id: str,
        payment_date: Optional[date] = None,
        payment_origin: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> PaymentResult:
        """
        Apply a payment to an installment

        Args:
            obligation: Obligation owning the installment
            installment: Installment being paid
            amount: Amount paid; must fit the currency precision exactly
            acting_user_id: User recording the payment
            payment_date: Date the money moved, defaults to today
            payment_origin: Funding source, defaults to the configured origin
            idempotency_key: Identifies this payment attempt; a repeated
                request with the same key returns the first result
            expected_version: Installment version the caller based its
                request on; a mismatch fails instead of applying

        Returns:
            PaymentResult with the updated installment and its postings

        Raises:
            ValidationError: Malformed amount or reused idempotency key
            OverpaymentError: Amount exceeds the remaining balance
            InactiveObligationError: Obligation is not active
            ConcurrencyError: Installment changed under the caller
        """
        payment_amount = self._coerce_amount(amount, obligation)
        payment_date = payment_date or date.today()
        payment_origin = payment_origin or self.default_payment_origin

        try:
            with self.store.atomic():
                if idempotency_key:
                    existing = self.store.find_payment_by_key(idempotency_key)
                    if existing:
                        return self._replay(existing, installment, payment_amount)

                current = self.store.get_installment(installment.id)
                if not current or current.obligation_id != obligation.id:
                    raise NotFoundError(
                        f"Installment {installment.id} not found on obligation {obligation.id}"
                    )
                current_obligation = self.store.get_obligation(obligation.id)
                if not current_obligation.is_active:
                    raise InactiveObligationError(
                        f"Obligation {obligation.id} is {current_obligation.status.value}, payments not allowed"
                    )
                if current.is_paid:
                    raise OverpaymentError(
                        f"Installment {current.installment_number} is already paid"
                    )
                if payment_amount > current.remaining_amount:
                    raise OverpaymentError(
                        f"Payment {payment_amount.to_string()} exceeds remaining balance "
                        f"{current.remaining_amount.to_string()} of installment {current.installment_number}"
                    )

                result = self._apply(
                    current_obligation, current, payment_amount, acting_user_id,
                    payment_date, payment_origin, idempotency_key,
                    expected_version if expected_version is not None else current.version
                )
        except (ValidationError, InactiveObligationError) as e:
            log_action(
                self.logger, "warning", f"Payment rejected: {e}",
                user_id=acting_user_id, action="apply_payment",
                resource=f"installment:{installment.id}",
                extra={"amount": payment_amount.to_string(), "reason": type(e).__name__}
            )
            raise

        if result.replayed:
            log_action(
                self.logger, "info", "Payment replayed from idempotency key",
                user_id=acting_user_id, action="apply_payment",
                resource=f"installment:{installment.id}",
                extra={"payment_id": result.payment.id, "idempotency_key": idempotency_key}
            )
            return result

        log_action(
            self.logger, "info",
            f"Payment applied to installment {result.installment.installment_number}",
            user_id=acting_user_id, action="apply_payment",
            resource=f"installment:{result.installment.id}",
            extra={
                "obligation_id": obligation.id,
                "amount": payment_amount.to_string(),
                "capital_paid": result.payment.capital_paid.to_string(),
                "interest_paid": result.payment.interest_paid.to_string(),
                "status": result.installment.status.value
            }
        )
        return result

    def _coerce_amount(self, amount: Union[Money, Decimal, str], obligation: Obligation) -> Money:
        """Turn caller input into Money without ever rounding it"""
        if isinstance(amount, Money):
            if amount.currency != obligation.currency:
                raise ValidationError(
                    f"Payment currency {amount.currency.code} does not match obligation currency "
                    f"{obligation.currency.code}"
                )
            raw = amount.amount
        else:
            try:
                raw = Decimal(str(amount))
            except InvalidOperation:
                raise ValidationError(f"Invalid payment amount: {amount!r}")

        if not raw.is_finite():
            raise ValidationError(f"Invalid payment amount: {amount!r}")
        if raw <= 0:
            raise ValidationError("Payment amount must be positive")
        if not fits_precision(raw, obligation.currency):
            raise ValidationError(
                f"Payment amount {raw} cannot be stored in {obligation.currency.code} "
                f"with {obligation.currency.precision} decimal places"
            )
        return Money(raw, obligation.currency)

    def _apply(
        self,
        obligation: Obligation,
        installment: Installment,
        amount: Money,
        acting_user_id: str,
        payment_date: date,
        payment_origin: str,
        idempotency_key: Optional[str],
        expected_version: int
    ) -> PaymentResult:
        now = datetime.now(timezone.utc)
        payment_id = str(uuid.uuid4())

        capital_paid, interest_paid = split_payment(installment, amount)
        new_paid = installment.paid_amount + amount
        new_status = InstallmentStatus.for_amounts(new_paid, installment.total_amount)

        updated = self.store.update_installment(
            installment.id,
            expected_version=expected_version,
            paid_amount=new_paid,
            status=new_status,
            paid_at=now if new_status == InstallmentStatus.PAID else None
        )

        postings = []
        components = [
            ("capital", capital_paid, obligation.kind.capital_category),
            ("interest", interest_paid, CategoryGroup.FINANCIAL_EXPENSE),
        ]
        for label, component, category in components:
            if not component.is_positive():
                continue
            request = PostingRequest(
                type=TransactionType.EXPENSE,
                amount=component,
                concept=f"Installment {installment.installment_number} {label} - {obligation.counterparty_name}",
                category_group=category,
                accrual_date=installment.due_date,
                payment_date=payment_date,
                documentation_status=obligation.kind.installment_documentation,
                payment_origin=payment_origin
            )
            postings.append(self.ledger_poster.post(
                request,
                branch_id=obligation.branch_id,
                obligation_id=obligation.id,
                recorded_by=acting_user_id,
                installment_id=installment.id,
                payment_id=payment_id
            ))

        payment = self.store.save_payment(PaymentRecord(
            id=payment_id,
            created_at=now,
            updated_at=now,
            idempotency_key=idempotency_key or payment_id,
            obligation_id=obligation.id,
            installment_id=installment.id,
            amount=amount,
            capital_paid=capital_paid,
            interest_paid=interest_paid,
            payment_date=payment_date,
            posting_ids=[p.id for p in postings],
            recorded_by=acting_user_id
        ))

        self.audit_trail.log_event(
            event_type=AuditEventType.PAYMENT_APPLIED,
            entity_type="installment",
            entity_id=installment.id,
            user_id=acting_user_id,
            metadata={
                "obligation_id": obligation.id,
                "payment_id": payment_id,
                "amount": amount.to_string(),
                "capital_paid": capital_paid.to_string(),
                "interest_paid": interest_paid.to_string(),
                "paid_amount": new_paid.to_string(),
                "status": new_status
            }
        )

        return PaymentResult(installment=updated, postings=postings, payment=payment)

    def _replay(self, existing: PaymentRecord, installment: Installment, amount: Money) -> PaymentResult:
        """Return the stored outcome of a payment attempt seen before"""
        if existing.installment_id != installment.id or existing.amount != amount:
            raise ValidationError(
                f"Idempotency key {existing.idempotency_key} was already used for a different payment"
            )

        postings = [self.store.get_ledger_transaction(pid) for pid in existing.posting_ids]
        return PaymentResult(
            installment=self.store.get_installment(existing.installment_id),
            postings=[p for p in postings if p is not None],
            payment=existing,
            replayed=True
        )

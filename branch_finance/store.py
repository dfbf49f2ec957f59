"""
Obligation Store

Persistence of obligations, installments, ledger transactions and payment
records on top of a StorageInterface. Creation of an obligation with its
installments is atomic, and installment updates are compare-and-swap on the
installment version.
"""

from datetime import datetime, timezone, date
from typing import List, Optional

from .currency import Money
from .exceptions import ConcurrencyError, NotFoundError, OverpaymentError, PersistenceError
from .models import (
    Obligation, ObligationKind, ObligationStatus, Installment, InstallmentStatus,
    LedgerTransaction, PaymentRecord
)
from .storage import StorageInterface


class ObligationStore:
    """
    Storage adapter for the obligations engine
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage

        self.obligations_table = "obligations"
        self.installments_table = "installments"
        self.ledger_table = "ledger_transactions"
        self.payments_table = "obligation_payments"

    def atomic(self):
        """Serializable transaction spanning every write made inside it"""
        return self.storage.atomic()

    def create_obligation_with_installments(
        self,
        obligation: Obligation,
        installments: List[Installment]
    ) -> Obligation:
        """
        Persist an obligation and its full installment set as one unit.
        Nothing is visible if any write fails; callers may widen the unit
        by wrapping this call in their own atomic() block.
        """
        with self.storage.atomic():
            if self.storage.exists(self.obligations_table, obligation.id):
                raise PersistenceError(f"Obligation {obligation.id} already exists")

            self.storage.save(self.obligations_table, obligation.id, obligation.to_dict())
            for installment in installments:
                self.storage.save(self.installments_table, installment.id, installment.to_dict())

        obligation.installments = sorted(installments, key=lambda i: i.installment_number)
        return obligation

    def get_obligation(self, obligation_id: str) -> Optional[Obligation]:
        """Load an obligation with its installments"""
        data = self.storage.load(self.obligations_table, obligation_id)
        if not data:
            return None
        return Obligation.from_dict(data, self.list_installments(obligation_id))

    def list_obligations(
        self,
        branch_id: str,
        status: Optional[ObligationStatus] = None,
        kind: Optional[ObligationKind] = None
    ) -> List[Obligation]:
        """List a branch's obligations, newest first, installments eager-loaded"""
        filters = {"branch_id": branch_id}
        if status:
            filters["status"] = status.value
        if kind:
            filters["kind"] = kind.value

        obligations = [
            Obligation.from_dict(data, self.list_installments(data['id']))
            for data in self.storage.find(self.obligations_table, filters)
        ]
        obligations.sort(key=lambda o: o.created_at, reverse=True)
        return obligations

    def get_installment(self, installment_id: str) -> Optional[Installment]:
        data = self.storage.load(self.installments_table, installment_id)
        if data:
            return Installment.from_dict(data)
        return None

    def list_installments(self, obligation_id: str) -> List[Installment]:
        installments = [
            Installment.from_dict(data)
            for data in self.storage.find(self.installments_table, {"obligation_id": obligation_id})
        ]
        installments.sort(key=lambda i: i.installment_number)
        return installments

    def update_installment(
        self,
        installment_id: str,
        expected_version: int,
        paid_amount: Optional[Money] = None,
        status: Optional[InstallmentStatus] = None,
        paid_at: Optional[datetime] = None,
        due_date: Optional[date] = None
    ) -> Installment:
        """
        Compare-and-swap update of one installment

        Raises:
            NotFoundError: If the installment does not exist
            ConcurrencyError: If the stored version differs from expected_version
            OverpaymentError: If the new paid amount leaves 0..total
        """
        with self.storage.atomic():
            installment = self.get_installment(installment_id)
            if not installment:
                raise NotFoundError(f"Installment {installment_id} not found")

            if installment.version != expected_version:
                raise ConcurrencyError(
                    f"Installment {installment_id} was modified concurrently "
                    f"(expected version {expected_version}, found {installment.version})"
                )

            if paid_amount is not None:
                if paid_amount.is_negative() or paid_amount > installment.total_amount:
                    raise OverpaymentError(
                        f"Paid amount {paid_amount.to_string()} outside 0..{installment.total_amount.to_string()}"
                    )
                installment.paid_amount = paid_amount
            if status is not None:
                installment.status = status
            if paid_at is not None:
                installment.paid_at = paid_at
            if due_date is not None:
                installment.due_date = due_date

            installment.version += 1
            installment.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.installments_table, installment.id, installment.to_dict())

        return installment

    def update_obligation_status(self, obligation_id: str, status: ObligationStatus) -> Obligation:
        with self.storage.atomic():
            data = self.storage.load(self.obligations_table, obligation_id)
            if not data:
                raise NotFoundError(f"Obligation {obligation_id} not found")

            data['status'] = status.value
            data['updated_at'] = datetime.now(timezone.utc).isoformat()
            self.storage.save(self.obligations_table, obligation_id, data)

        return self.get_obligation(obligation_id)

    def insert_ledger_transaction(self, transaction: LedgerTransaction) -> LedgerTransaction:
        self.storage.save(self.ledger_table, transaction.id, transaction.to_dict())
        return transaction

    def list_ledger_transactions(self, obligation_id: str) -> List[LedgerTransaction]:
        """Postings of one obligation, in insertion order"""
        data = self.storage.find(self.ledger_table, {"obligation_id": obligation_id})
        return [LedgerTransaction.from_dict(item) for item in data]

    def save_payment(self, payment: PaymentRecord) -> PaymentRecord:
        self.storage.save(self.payments_table, payment.id, payment.to_dict())
        return payment

    def find_payment_by_key(self, idempotency_key: str) -> Optional[PaymentRecord]:
        found = self.storage.find(self.payments_table, {"idempotency_key": idempotency_key})
        if found:
            return PaymentRecord.from_dict(found[0])
        return None

    def list_payments(self, obligation_id: str) -> List[PaymentRecord]:
        payments = [
            PaymentRecord.from_dict(data)
            for data in self.storage.find(self.payments_table, {"obligation_id": obligation_id})
        ]
        payments.sort(key=lambda p: p.created_at)
        return payments

    def get_ledger_transaction(self, transaction_id: str) -> Optional[LedgerTransaction]:
        data = self.storage.load(self.ledger_table, transaction_id)
        if data:
            return LedgerTransaction.from_dict(data)
        return None

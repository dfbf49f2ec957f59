"""
Ledger Poster

Single write path for the accounting entries produced by the obligations
engine. It checks that the amount is positive and otherwise passes the
posting through to the bookkeeping store untouched.
"""

from datetime import datetime, timezone
from typing import List, Optional
import uuid

from .audit import AuditTrail, AuditEventType
from .exceptions import ValidationError
from .models import LedgerTransaction, PostingRequest
from .store import ObligationStore


class LedgerPoster:
    """Writes one ledger transaction per posting request"""

    def __init__(self, store: ObligationStore, audit_trail: AuditTrail):
        self.store = store
        self.audit_trail = audit_trail

    def post(
        self,
        request: PostingRequest,
        branch_id: str,
        obligation_id: str,
        recorded_by: Optional[str],
        installment_id: Optional[str] = None,
        payment_id: Optional[str] = None
    ) -> LedgerTransaction:
        """
        Record one accounting entry

        Args:
            request: What to book (type, amount, category, dates, ...)
            branch_id: Branch whose books receive the entry
            obligation_id: Obligation the entry originates from
            recorded_by: Acting user id
            installment_id: Originating installment, when there is one
            payment_id: Payment record the entry belongs to

        Returns:
            The stored LedgerTransaction

        Raises:
            ValidationError: If the amount is not positive
        """
        if not request.amount.is_positive():
            raise ValidationError(f"Posting amount must be positive, got {request.amount.to_string()}")

        now = datetime.now(timezone.utc)
        transaction = LedgerTransaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            branch_id=branch_id,
            type=request.type,
            amount=request.amount,
            concept=request.concept,
            category_group=request.category_group,
            accrual_date=request.accrual_date,
            payment_date=request.payment_date,
            documentation_status=request.documentation_status,
            payment_origin=request.payment_origin,
            recorded_by=recorded_by,
            obligation_id=obligation_id,
            installment_id=installment_id,
            payment_id=payment_id
        )
        self.store.insert_ledger_transaction(transaction)

        self.audit_trail.log_event(
            event_type=AuditEventType.LEDGER_POSTED,
            entity_type="ledger_transaction",
            entity_id=transaction.id,
            user_id=recorded_by,
            metadata={
                "obligation_id": obligation_id,
                "installment_id": installment_id,
                "type": request.type,
                "amount": request.amount.to_string(),
                "category_group": request.category_group,
                "concept": request.concept
            }
        )

        return transaction

    def transactions_for_obligation(self, obligation_id: str) -> List[LedgerTransaction]:
        """Ledger entries produced for one obligation, oldest first"""
        return self.store.list_ledger_transactions(obligation_id=obligation_id)

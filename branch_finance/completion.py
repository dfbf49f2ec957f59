"""
Completion Watcher

Decides when an obligation is fully settled. After every payment it re-reads
all installments of the obligation instead of keeping a running counter, so
a missed or out-of-order update can never leave a settled obligation open.
"""

from typing import Optional

from .audit import AuditTrail, AuditEventType
from .exceptions import NotFoundError
from .logging_config import get_logger, log_action
from .models import Obligation, ObligationStatus
from .store import ObligationStore


class CompletionWatcher:
    """Flips an active obligation to completed once every installment is paid"""

    def __init__(self, store: ObligationStore, audit_trail: AuditTrail):
        self.store = store
        self.audit_trail = audit_trail
        self.logger = get_logger("branch_finance.completion")

    def check(self, obligation_id: str, acting_user_id: Optional[str] = None) -> Obligation:
        """
        Re-scan an obligation and complete it when settled

        Terminal statuses are never touched: a completed obligation stays
        completed, and defaulted or cancelled ones are left as flagged.

        Returns:
            The obligation as stored after the check
        """
        with self.store.atomic():
            obligation = self.store.get_obligation(obligation_id)
            if not obligation:
                raise NotFoundError(f"Obligation {obligation_id} not found")

            if not obligation.is_active:
                return obligation

            installments = obligation.installments
            if not installments or not all(i.is_paid for i in installments):
                return obligation

            obligation = self.store.update_obligation_status(obligation_id, ObligationStatus.COMPLETED)
            self.audit_trail.log_event(
                event_type=AuditEventType.OBLIGATION_COMPLETED,
                entity_type="obligation",
                entity_id=obligation_id,
                user_id=acting_user_id,
                metadata={"installment_count": len(installments)}
            )

        log_action(
            self.logger, "info", "Obligation completed",
            user_id=acting_user_id, action="complete_obligation",
            resource=f"obligation:{obligation_id}"
        )
        return obligation

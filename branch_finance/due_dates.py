"""
Due Date Editor

Moves the due date of a single unpaid installment of a payment plan.
Neighbouring installments are not reflowed and no ordering against them is
enforced.
"""

from datetime import date

from .audit import AuditTrail, AuditEventType
from .exceptions import InactiveObligationError, NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .models import Obligation, Installment
from .store import ObligationStore


class DueDateEditor:

    def __init__(self, store: ObligationStore, audit_trail: AuditTrail):
        self.store = store
        self.audit_trail = audit_trail
        self.logger = get_logger("branch_finance.due_dates")

    def edit_due_date(
        self,
        obligation: Obligation,
        installment: Installment,
        new_date: date,
        acting_user_id: str
    ) -> Installment:
        """
        Change one installment's due date

        Raises:
            ValidationError: Loan obligation, or installment already paid
            InactiveObligationError: Obligation is not active
            NotFoundError: Installment does not belong to the obligation
        """
        if not obligation.kind.allows_due_date_edit:
            raise ValidationError(f"Due dates of {obligation.kind.value} obligations cannot be edited")

        with self.store.atomic():
            current = self.store.get_installment(installment.id)
            if not current or current.obligation_id != obligation.id:
                raise NotFoundError(
                    f"Installment {installment.id} not found on obligation {obligation.id}"
                )
            current_obligation = self.store.get_obligation(obligation.id)
            if not current_obligation.is_active:
                raise InactiveObligationError(
                    f"Obligation {obligation.id} is {current_obligation.status.value}, due dates are frozen"
                )
            if current.is_paid:
                raise ValidationError(
                    f"Installment {current.installment_number} is already paid"
                )

            previous_date = current.due_date
            updated = self.store.update_installment(
                current.id, expected_version=current.version, due_date=new_date
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.DUE_DATE_CHANGED,
                entity_type="installment",
                entity_id=current.id,
                user_id=acting_user_id,
                metadata={
                    "obligation_id": obligation.id,
                    "installment_number": current.installment_number,
                    "previous_due_date": previous_date,
                    "new_due_date": new_date
                }
            )

        log_action(
            self.logger, "info", f"Due date of installment {updated.installment_number} changed",
            user_id=acting_user_id, action="edit_due_date",
            resource=f"installment:{updated.id}",
            extra={"previous_due_date": previous_date.isoformat(), "new_due_date": new_date.isoformat()}
        )
        return updated

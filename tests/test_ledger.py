"""
Test suite for the ledger poster
"""

import pytest
from decimal import Decimal
from datetime import date

from branch_finance.audit import AuditTrail, AuditEventType
from branch_finance.currency import Money, Currency
from branch_finance.exceptions import ValidationError
from branch_finance.ledger import LedgerPoster
from branch_finance.models import (
    PostingRequest, TransactionType, CategoryGroup, DocumentationStatus
)
from branch_finance.storage import InMemoryStorage
from branch_finance.store import ObligationStore


@pytest.fixture
def poster():
    storage = InMemoryStorage()
    return LedgerPoster(ObligationStore(storage), AuditTrail(storage))


def request_for(amount: str) -> PostingRequest:
    return PostingRequest(
        type=TransactionType.EXPENSE,
        amount=Money(Decimal(amount), Currency.ARS),
        concept="Installment 1 capital - Banco Nación",
        category_group=CategoryGroup.DEBT,
        accrual_date=date(2025, 2, 1),
        payment_date=date(2025, 2, 5),
        documentation_status=DocumentationStatus.INTERNAL,
        payment_origin="bank_transfer"
    )


class TestLedgerPoster:

    def test_post_stores_request_unchanged(self, poster):
        transaction = poster.post(
            request_for('10000'), branch_id="BR001", obligation_id="OBL001",
            recorded_by="USER001", installment_id="INS001", payment_id="PAY001"
        )

        stored = poster.store.get_ledger_transaction(transaction.id)
        assert stored.amount == Money(Decimal('10000'), Currency.ARS)
        assert stored.type == TransactionType.EXPENSE
        assert stored.category_group == CategoryGroup.DEBT
        assert stored.accrual_date == date(2025, 2, 1)
        assert stored.payment_date == date(2025, 2, 5)
        assert stored.documentation_status == DocumentationStatus.INTERNAL
        assert stored.payment_origin == "bank_transfer"
        assert stored.recorded_by == "USER001"
        assert stored.installment_id == "INS001"
        assert stored.payment_id == "PAY001"

    @pytest.mark.parametrize("amount", ['0', '-5'])
    def test_non_positive_amount_rejected(self, poster, amount):
        with pytest.raises(ValidationError):
            poster.post(request_for(amount), branch_id="BR001", obligation_id="OBL001", recorded_by="USER001")

        assert poster.transactions_for_obligation("OBL001") == []

    def test_postings_audited(self, poster):
        transaction = poster.post(request_for('5'), branch_id="BR001", obligation_id="OBL001",
                                  recorded_by="USER001")

        events = poster.audit_trail.get_events_by_type(AuditEventType.LEDGER_POSTED)
        assert [e.entity_id for e in events] == [transaction.id]
        assert events[0].metadata["category_group"] == "DEBT"

    def test_transactions_for_obligation(self, poster):
        poster.post(request_for('1'), branch_id="BR001", obligation_id="OBL001", recorded_by="U")
        poster.post(request_for('2'), branch_id="BR001", obligation_id="OBL002", recorded_by="U")
        poster.post(request_for('3'), branch_id="BR001", obligation_id="OBL001", recorded_by="U")

        amounts = [t.amount.amount for t in poster.transactions_for_obligation("OBL001")]
        assert amounts == [Decimal('1.00'), Decimal('3.00')]

"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection and integrity verification.
"""

import pytest
from datetime import datetime, timezone, date
from decimal import Decimal

from branch_finance.storage import InMemoryStorage
from branch_finance.audit import AuditTrail, AuditEvent, AuditEventType
from branch_finance.models import ObligationKind


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_is_made_serializable(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            sequence=1,
            event_type=AuditEventType.OBLIGATION_CREATED,
            entity_type="obligation",
            entity_id="OBL001",
            previous_hash="",
            current_hash="",
            metadata={
                "principal": Decimal('120000.00'),
                "start_date": date(2025, 1, 1),
                "kind": ObligationKind.LOAN,
                "nested": {"rate": Decimal('10')}
            },
            user_id="USER001"
        )

        assert event.metadata == {
            "principal": "120000.00",
            "start_date": "2025-01-01",
            "kind": "loan",
            "nested": {"rate": "10"}
        }

    def test_hash_round_trip(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            sequence=1,
            event_type=AuditEventType.PAYMENT_APPLIED,
            entity_type="installment",
            entity_id="INS001",
            previous_hash="",
            current_hash="",
            metadata={"amount": "ARS 100.00"}
        )
        event.current_hash = event.calculate_hash()

        restored = AuditEvent.from_dict(event.to_dict())
        assert restored.verify_hash()

        restored.metadata["amount"] = "ARS 1.00"
        assert not restored.verify_hash()


class TestAuditTrail:
    """Test the hash chain"""

    @pytest.fixture
    def audit_trail(self):
        return AuditTrail(InMemoryStorage())

    def test_events_are_chained(self, audit_trail):
        first = audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001", user_id="U1")
        second = audit_trail.log_event(AuditEventType.LEDGER_POSTED, "ledger_transaction", "TX001", user_id="U1")

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert audit_trail.count_events() == 2

        result = audit_trail.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 2

    def test_tampering_detected(self, audit_trail):
        audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001")
        event = audit_trail.log_event(AuditEventType.PAYMENT_APPLIED, "installment", "INS001",
                                      metadata={"amount": "ARS 100.00"})
        audit_trail.log_event(AuditEventType.PAYMENT_APPLIED, "installment", "INS001")

        data = audit_trail.storage.load(audit_trail.table_name, event.id)
        data['metadata']['amount'] = "ARS 1.00"
        audit_trail.storage.save(audit_trail.table_name, event.id, data)

        result = audit_trail.verify_integrity()
        assert not result['valid']
        assert result['hash_errors'][0]['event_id'] == event.id

    def test_chain_break_detected(self, audit_trail):
        audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001")
        second = audit_trail.log_event(AuditEventType.OBLIGATION_COMPLETED, "obligation", "OBL001")

        data = audit_trail.storage.load(audit_trail.table_name, second.id)
        data['previous_hash'] = "0" * 64
        audit_trail.storage.save(audit_trail.table_name, second.id, data)

        result = audit_trail.verify_integrity()
        assert not result['valid']
        assert result['chain_breaks']

    def test_queries(self, audit_trail):
        audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001")
        audit_trail.log_event(AuditEventType.DUE_DATE_CHANGED, "installment", "INS001")
        audit_trail.log_event(AuditEventType.DUE_DATE_CHANGED, "installment", "INS002")

        assert len(audit_trail.get_events_for_entity("installment", "INS001")) == 1
        assert len(audit_trail.get_events_by_type(AuditEventType.DUE_DATE_CHANGED)) == 2

    def test_disabled_trail_logs_nothing(self):
        audit_trail = AuditTrail(InMemoryStorage(), enabled=False)
        assert audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001") is None
        assert audit_trail.count_events() == 0

    def test_rolled_back_events_vanish(self, audit_trail):
        audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001")

        with pytest.raises(RuntimeError):
            with audit_trail.storage.atomic():
                audit_trail.log_event(AuditEventType.PAYMENT_APPLIED, "installment", "INS001")
                raise RuntimeError("payment failed")

        assert audit_trail.count_events() == 1
        assert audit_trail.verify_integrity()['valid']

    def test_rollback_restores_chain_head(self, audit_trail):
        first = audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001")

        with pytest.raises(RuntimeError):
            with audit_trail.storage.atomic():
                audit_trail.log_event(AuditEventType.PAYMENT_APPLIED, "installment", "INS001")
                raise RuntimeError("payment failed")

        after = audit_trail.log_event(AuditEventType.PAYMENT_APPLIED, "installment", "INS001")
        assert after.sequence == 2
        assert after.previous_hash == first.current_hash

    def test_removed_tail_detected(self, audit_trail):
        audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001")
        last = audit_trail.log_event(AuditEventType.OBLIGATION_COMPLETED, "obligation", "OBL001")

        del audit_trail.storage._data[audit_trail.table_name][last.id]

        result = audit_trail.verify_integrity()
        assert not result['valid']
        assert result['head_mismatch']
        assert result['chain_breaks'] == []


class CountingStorage(InMemoryStorage):
    """In-memory storage that counts full table scans"""

    def __init__(self):
        super().__init__()
        self.scans = 0

    def load_all(self, table):
        self.scans += 1
        return super().load_all(table)


class TestAuditChainHead:
    """Test appending through the stored chain head"""

    def test_append_does_not_scan_events(self):
        storage = CountingStorage()
        audit_trail = AuditTrail(storage)
        audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001")

        storage.scans = 0
        for number in range(50):
            audit_trail.log_event(AuditEventType.PAYMENT_APPLIED, "installment", f"INS{number:03d}")

        assert storage.scans == 0
        assert audit_trail.count_events() == 51
        assert audit_trail.verify_integrity()['valid']

    def test_chain_shared_between_trails(self):
        storage = InMemoryStorage()
        first_trail = AuditTrail(storage)
        second_trail = AuditTrail(storage)

        first = first_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001")
        second = second_trail.log_event(AuditEventType.PAYMENT_APPLIED, "installment", "INS001")
        third = first_trail.log_event(AuditEventType.OBLIGATION_COMPLETED, "obligation", "OBL001")

        assert [first.sequence, second.sequence, third.sequence] == [1, 2, 3]
        assert second.previous_hash == first.current_hash
        assert third.previous_hash == second.current_hash
        assert first_trail.verify_integrity()['valid']

    def test_head_seeded_from_existing_events(self):
        storage = InMemoryStorage()
        audit_trail = AuditTrail(storage)
        audit_trail.log_event(AuditEventType.OBLIGATION_CREATED, "obligation", "OBL001")
        second = audit_trail.log_event(AuditEventType.DUE_DATE_CHANGED, "installment", "INS001")

        # Events written before the head record existed
        storage._data.pop(audit_trail.head_table)

        third = audit_trail.log_event(AuditEventType.DUE_DATE_CHANGED, "installment", "INS002")
        assert third.sequence == 3
        assert third.previous_hash == second.current_hash
        assert audit_trail.verify_integrity()['valid']

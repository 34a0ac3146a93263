"""
Tests para el generador de secuencias

- Números estrictamente crecientes por (empresa, tipo)
- Sin duplicados bajo concurrencia real (hilos con sesiones propias)
- Formato PREFIX-NNNNN con prefijo de la empresa
"""

import pytest
from concurrent.futures import ThreadPoolExecutor

from app.modules.sequences.models import SequenceKind, DocumentCounter
from app.modules.sequences.service import SequenceService, format_document_number


# ===== TESTS DE FORMATO =====

class TestFormatDocumentNumber:

    def test_pads_to_five_digits(self):
        assert format_document_number("INV", 1) == "INV-00001"
        assert format_document_number("REC", 42) == "REC-00042"

    def test_wider_numbers_are_not_truncated(self):
        assert format_document_number("INV", 123456) == "INV-123456"

    def test_prefix_is_normalized(self):
        assert format_document_number(" inv- ", 7) == "INV-00007"


# ===== TESTS DE SECUENCIAS =====

class TestNextSequence:

    def test_starts_at_one_and_increments(self, db_session, tenant_id):
        service = SequenceService(db_session)
        assert service.next_sequence(tenant_id, SequenceKind.INVOICE) == 1
        assert service.next_sequence(tenant_id, SequenceKind.INVOICE) == 2
        assert service.next_sequence(tenant_id, SequenceKind.INVOICE) == 3

    def test_kinds_are_independent(self, db_session, tenant_id):
        service = SequenceService(db_session)
        service.next_sequence(tenant_id, SequenceKind.INVOICE)
        service.next_sequence(tenant_id, SequenceKind.INVOICE)
        assert service.next_sequence(tenant_id, SequenceKind.RECEIPT) == 1

    def test_tenants_are_independent(self, db_session, company, other_company):
        service = SequenceService(db_session)
        service.next_sequence(company.id, SequenceKind.INVOICE)
        service.next_sequence(company.id, SequenceKind.INVOICE)
        assert service.next_sequence(other_company.id, SequenceKind.INVOICE) == 1

    def test_single_counter_row_per_tenant_and_kind(self, db_session, tenant_id):
        service = SequenceService(db_session)
        for _ in range(5):
            service.next_sequence(tenant_id, SequenceKind.RECEIPT)

        rows = db_session.query(DocumentCounter).filter(DocumentCounter.tenant_id == tenant_id).all()
        assert len(rows) == 1
        assert rows[0].current_value == 5

    def test_concurrent_calls_never_duplicate(self, session_factory, tenant_id):
        """N llamadas concurrentes -> N valores distintos y el máximo es N"""
        calls = 20

        def allocate(_):
            session = session_factory()
            try:
                return SequenceService(session).next_sequence(tenant_id, SequenceKind.INVOICE)
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=8) as executor:
            values = list(executor.map(allocate, range(calls)))

        assert len(set(values)) == calls
        assert max(values) == calls
        assert sorted(values) == list(range(1, calls + 1))


class TestAllocateNumbers:

    def test_uses_company_prefixes(self, db_session, company, other_company):
        service = SequenceService(db_session)
        assert service.allocate_invoice_number(company.id) == "INV-00001"
        assert service.allocate_receipt_number(company.id) == "REC-00001"
        assert service.allocate_invoice_number(other_company.id) == "FAC-00001"
        assert service.allocate_receipt_number(other_company.id) == "POS-00001"

    def test_falls_back_to_default_prefix(self, db_session):
        from uuid import uuid4
        assert SequenceService(db_session).allocate_invoice_number(uuid4()) == "INV-00001"

from backoffice.schemas.avoir import Avoir
from backoffice.schemas.delivery import DeliveryCreate
from backoffice.schemas.ledger import StoreLedgerConfig
from backoffice.schemas.verification import MatchType, OwnerKind, OwnerRef, VerifyInvoiceRequest

INVOICE_ROW = {"invoice_reference": "FAC-100", "bl_number": "BL-100", "amount": "99.90", "supplier": "ACME SAS"}
FALLBACK_ROW = {"invoice_reference": "F-7781", "bl_number": "FAC2024-001", "amount": "156.78", "supplier": "ACME"}

def test_invoice_reference_match(services, ledger):
    ledger.rows = [INVOICE_ROW]
    result = services.verification.verify(7, "FAC-100")

    assert result.exists is True
    assert result.match_type == MatchType.INVOICE_REFERENCE
    assert result.invoice_amount == 99.90
    assert result.supplier_name_matched == "ACME SAS"
    assert result.error_message is None
    assert ledger.calls == 1

def test_falls_back_to_bl_column(services, ledger):
    ledger.rows = [FALLBACK_ROW]
    result = services.verification.verify(7, "FAC2024-001")

    assert result.exists is True
    assert result.match_type == MatchType.BL_NUMBER
    assert result.invoice_amount == 156.78
    assert result.supplier_name_matched == "ACME"
    assert result.invoice_reference == "F-7781"
    assert [r.url.params["where"] for r in ledger.requests] == [
        "(invoice_reference,eq,FAC2024-001)",
        "(bl_number,eq,FAC2024-001)",
    ]

def test_second_call_within_ttl_is_served_from_cache(services, ledger, clock):
    ledger.rows = [INVOICE_ROW]
    first = services.verification.verify(7, "FAC-100")
    clock.advance(1800)
    second = services.verification.verify(7, " fac-100 ")

    assert ledger.calls == 1
    assert second.cache_hit is True
    assert second.exists == first.exists
    assert second.match_type == first.match_type
    assert second.invoice_amount == first.invoice_amount

def test_expired_entry_goes_back_to_the_ledger(services, ledger, clock):
    ledger.rows = [INVOICE_ROW]
    services.verification.verify(7, "FAC-100")
    clock.advance(3600)
    result = services.verification.verify(7, "FAC-100")

    assert ledger.calls == 2
    assert result.cache_hit is False

def test_confirmed_absence_is_cached(services, ledger):
    first = services.verification.verify(7, "UNKNOWN-1")
    second = services.verification.verify(7, "UNKNOWN-1")

    assert first.exists is False
    assert first.match_type == MatchType.NONE
    assert first.error_message is None
    assert first.is_indeterminate is False
    assert second.cache_hit is True
    # invoice column + BL column on the first call only
    assert ledger.calls == 2

def test_force_refresh_bypasses_cache(services, ledger):
    services.verification.verify(7, "FAC-100")
    ledger.rows = [INVOICE_ROW]
    result = services.verification.verify(7, "FAC-100", force_refresh=True)

    assert result.exists is True
    assert services.verification.verify(7, "FAC-100").exists is True

def test_ledger_errors_are_never_cached(services, ledger):
    for failure in ("network", "timeout", "http", "parse"):
        ledger.fail_with = failure
        before = ledger.calls
        first = services.verification.verify(7, "FAC-100")
        second = services.verification.verify(7, "FAC-100")

        assert first.exists is False
        assert first.error_message.startswith(("network", "http", "parse"))
        assert first.is_indeterminate is True
        assert second.cache_hit is False
        assert ledger.calls == before + 2

    ledger.fail_with = None
    ledger.rows = [INVOICE_ROW]
    assert services.verification.verify(7, "FAC-100").exists is True

def test_invalid_reference_makes_no_external_call(services, ledger):
    for reference in ("", "   ", None, "X" * 101):
        result = services.verification.verify(7, reference)
        assert result.exists is False
        assert result.match_type == MatchType.NONE
        assert result.error_message == "invalid reference"
    assert ledger.calls == 0
    assert services.verification.verify(7, "X" * 100).error_message is None

def test_unconfigured_store_is_not_cached(services, ledger, repository):
    result = services.verification.verify(99, "FAC-100")
    assert result.exists is False
    assert result.error_message == "ledger not configured"
    assert ledger.calls == 0

    ledger.rows = [INVOICE_ROW]
    repository.set_store_ledger_config(StoreLedgerConfig(store_id=99, table_name="invoices"))
    assert services.verification.verify(99, "FAC-100").exists is True

def test_store_without_bl_column_skips_fallback(services, ledger, repository):
    repository.set_store_ledger_config(StoreLedgerConfig(store_id=3, table_name="factures"))
    ledger.rows = [FALLBACK_ROW]
    result = services.verification.verify(3, "FAC2024-001")

    assert result.exists is False
    assert ledger.calls == 1

def test_supplier_mismatch_falls_through(services, ledger):
    ledger.rows = [INVOICE_ROW]
    assert services.verification.verify(7, "FAC-100", supplier_name="acme").exists is True
    result = services.verification.verify(7, "FAC-100", supplier_name="Other Supplier")
    assert result.exists is False
    assert result.error_message is None

def test_verify_bl_uses_only_bl_column(services, ledger):
    ledger.rows = [FALLBACK_ROW]
    result = services.verification.verify_bl(7, "FAC2024-001", supplier_name="ACME")

    assert result.exists is True
    assert result.match_type == MatchType.BL_NUMBER
    assert ledger.calls == 1
    assert services.verification.verify_bl(7, "FAC2024-001", supplier_name="ACME").cache_hit is True

def test_one_record_per_owner_across_repeated_calls(services, ledger, repository):
    ledger.rows = [INVOICE_ROW]
    delivery = repository.create_delivery(DeliveryCreate(store_id=7, supplier_id=1))
    owner = OwnerRef(kind=OwnerKind.DELIVERY, id=delivery.id)

    services.verification.verify(7, "FAC-100", owner=owner)
    services.verification.verify(7, "FAC-100", owner=owner)
    services.verification.verify(7, "FAC-100", force_refresh=True, owner=owner)

    records = repository.list_verification_records()
    assert len(records) == 1
    assert records[0].owner == owner
    assert records[0].match_type == MatchType.INVOICE_REFERENCE

def test_negative_verdict_creates_no_record(services, repository):
    delivery = repository.create_delivery(DeliveryCreate(store_id=7))
    services.verification.verify(7, "MISSING", owner=OwnerRef(kind=OwnerKind.DELIVERY, id=delivery.id))
    assert repository.list_verification_records() == []

def test_verify_delivery_copies_ledger_data(services, ledger, repository):
    ledger.rows = [FALLBACK_ROW]
    delivery = repository.create_delivery(DeliveryCreate(store_id=7, supplier_id=1))

    result = services.verification.verify_delivery(delivery.id, bl_number="FAC2024-001")

    assert result.exists is True
    updated = repository.get_delivery(delivery.id)
    assert updated.invoice_reference == "F-7781"
    assert updated.invoice_amount == 156.78
    assert len(repository.list_verification_records()) == 1

def test_batch_verification_is_paced(services, ledger, sleeps):
    ledger.rows = [INVOICE_ROW]
    items = [VerifyInvoiceRequest(store_id=7, invoice_reference=ref) for ref in ("FAC-100", "FAC-200", "FAC-300")]

    results = services.verification.verify_batch(items)

    assert [r.result.exists for r in results] == [True, False, False]
    assert sleeps == [0.25, 0.25]

def test_avoir_confirmation_sets_flag_and_record(services, ledger, repository, clock):
    ledger.rows = [INVOICE_ROW]
    repository.add_avoir(Avoir(id=5, store_id=7, supplier_id=1, invoice_reference="FAC-100"))

    result = services.verification.confirm_avoir(5)

    avoir = repository.get_avoir(5)
    assert result.exists is True
    assert avoir.nocodb_verified is True
    assert avoir.nocodb_verified_at == clock.now
    records = repository.list_verification_records()
    assert [r.owner for r in records] == [OwnerRef(kind=OwnerKind.AVOIR, id=5)]

def test_avoir_confirmation_from_cache_still_records(services, ledger, repository):
    ledger.rows = [INVOICE_ROW]
    services.verification.verify(7, "FAC-100")
    repository.add_avoir(Avoir(id=6, store_id=7, invoice_reference="FAC-100"))

    result = services.verification.confirm_avoir(6)

    assert result.cache_hit is True
    assert repository.get_avoir(6).nocodb_verified is True
    assert len(repository.list_verification_records()) == 1

def test_failed_avoir_confirmation_leaves_flag_unset(services, ledger, repository):
    ledger.fail_with = "network"
    repository.add_avoir(Avoir(id=8, store_id=7, invoice_reference="FAC-100"))

    result = services.verification.confirm_avoir(8)

    assert result.is_indeterminate is True
    assert repository.get_avoir(8).nocodb_verified is False

def test_devalidation_keeps_history(services, ledger, repository):
    ledger.rows = [INVOICE_ROW]
    repository.add_avoir(Avoir(id=9, store_id=7, invoice_reference="FAC-100"))
    services.verification.confirm_avoir(9)

    avoir = services.verification.set_avoir_verification(9, False)

    assert avoir.nocodb_verified is False
    assert avoir.nocodb_verified_at is None
    assert len(repository.list_verification_records()) == 1

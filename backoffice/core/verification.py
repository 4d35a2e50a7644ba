from typing import Any, Callable, Dict, List, Optional
from datetime import datetime
import logging
import time

from backoffice.core.cache import VerificationCache, utc_now
from backoffice.core.errors import (
    ConfigurationError,
    EntityNotFoundError,
    LedgerError,
    ReferenceValidationError,
)
from backoffice.core.ledger_client import ExternalLedgerClient
from backoffice.db.repository import Repository
from backoffice.schemas.avoir import Avoir
from backoffice.schemas.ledger import StoreLedgerConfig
from backoffice.schemas.verification import (
    BatchVerifyItemResult,
    CacheKey,
    MatchType,
    OwnerKind,
    OwnerRef,
    VerificationMode,
    VerificationRecord,
    VerificationResult,
    VerifyInvoiceRequest,
)

logger = logging.getLogger(__name__)

INVALID_REFERENCE = "invalid reference"
LEDGER_NOT_CONFIGURED = "ledger not configured"
BL_COLUMN_NOT_CONFIGURED = "BL column not configured"

def supplier_matches(expected: str, found: Any) -> bool:
    """Loose supplier comparison: either name contains the other, case-insensitive."""
    a = expected.strip().lower()
    b = str(found).strip().lower()
    return bool(a and b) and (a in b or b in a)

def parse_amount(raw: Any) -> Optional[float]:
    if raw is None or raw == "":
        return None
    try:
        return float(str(raw).replace(",", "."))
    except ValueError:
        return None


class VerificationService:
    """
    Single source of truth for "does this reference exist in the ledger".

    Flow per call: reference validation -> cache -> store mapping ->
    invoice column lookup -> BL column fallback. Confirmed verdicts and
    confirmed absences are cached; configuration and ledger failures are not,
    so the next call retries. A confirmed match tied to an owner entity
    produces at most one VerificationRecord for that owner.
    """

    def __init__(
        self,
        repository: Repository,
        cache: VerificationCache,
        ledger_client: ExternalLedgerClient,
        reference_max_length: int = 100,
        batch_delay_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.cache = cache
        self.ledger_client = ledger_client
        self.reference_max_length = reference_max_length
        self.batch_delay_seconds = batch_delay_seconds
        self._sleep = sleep
        self._clock = clock

    def validate_reference(self, reference: Optional[str]) -> str:
        cleaned = (reference or "").strip()
        if not cleaned or len(cleaned) > self.reference_max_length:
            raise ReferenceValidationError(INVALID_REFERENCE)
        return cleaned

    def resolve_config(self, store_id: int) -> StoreLedgerConfig:
        config = self.repository.get_store_ledger_config(store_id)
        if config is None or not self.ledger_client.is_configured:
            raise ConfigurationError(LEDGER_NOT_CONFIGURED)
        return config

    def verify(
        self,
        store_id: int,
        reference: Optional[str],
        supplier_name: Optional[str] = None,
        force_refresh: bool = False,
        owner: Optional[OwnerRef] = None,
    ) -> VerificationResult:
        """Verify an invoice reference, falling back to the BL column on a miss."""
        def columns(config: StoreLedgerConfig):
            yield config.columns.invoice_column, MatchType.INVOICE_REFERENCE
            if config.columns.bl_column:
                yield config.columns.bl_column, MatchType.BL_NUMBER

        return self._run(VerificationMode.INVOICE, store_id, reference, supplier_name, force_refresh, owner, columns)

    def verify_bl(
        self,
        store_id: int,
        bl_number: Optional[str],
        supplier_name: Optional[str] = None,
        force_refresh: bool = False,
        owner: Optional[OwnerRef] = None,
    ) -> VerificationResult:
        """Look a delivery-slip number up in the BL column only."""
        def columns(config: StoreLedgerConfig):
            if not config.columns.bl_column:
                raise ConfigurationError(BL_COLUMN_NOT_CONFIGURED)
            yield config.columns.bl_column, MatchType.BL_NUMBER

        return self._run(VerificationMode.BL, store_id, bl_number, supplier_name, force_refresh, owner, columns)

    def verify_invoice(
        self,
        reference: Optional[str],
        store_id: int,
        supplier_name: Optional[str] = None,
        force_refresh: bool = False,
    ) -> VerificationResult:
        return self.verify(store_id, reference, supplier_name, force_refresh)

    def verify_batch(self, items: List[VerifyInvoiceRequest]) -> List[BatchVerifyItemResult]:
        """Verify references one after another, pausing between items to pace the ledger."""
        results = []
        for index, item in enumerate(items):
            if index and self.batch_delay_seconds > 0:
                self._sleep(self.batch_delay_seconds)
            result = self.verify(item.store_id, item.invoice_reference, item.supplier_name, item.force_refresh)
            results.append(BatchVerifyItemResult(
                store_id=item.store_id,
                invoice_reference=item.invoice_reference,
                result=result,
            ))
        logger.info(f"Batch verification COMPLETED. Count: {len(results)}")
        return results

    def verify_delivery(
        self,
        delivery_id: int,
        invoice_reference: Optional[str] = None,
        bl_number: Optional[str] = None,
        force_refresh: bool = False,
    ) -> VerificationResult:
        """Verify a delivery by invoice reference, or by BL number when no reference is given.

        On a confirmed match the ledger's invoice reference and amount are copied
        onto the delivery.
        """
        delivery = self.repository.get_delivery(delivery_id)
        if not delivery:
            raise EntityNotFoundError("Delivery", delivery_id)

        supplier = self.repository.get_supplier(delivery.supplier_id) if delivery.supplier_id else None
        supplier_name = supplier.name if supplier else None
        owner = OwnerRef(kind=OwnerKind.DELIVERY, id=delivery_id)

        if invoice_reference and invoice_reference.strip():
            result = self.verify(delivery.store_id, invoice_reference, supplier_name, force_refresh, owner)
        else:
            result = self.verify_bl(delivery.store_id, bl_number, supplier_name, force_refresh, owner)

        if result.exists:
            changes: Dict[str, Any] = {}
            if result.invoice_reference:
                changes["invoice_reference"] = result.invoice_reference
            if result.invoice_amount is not None:
                changes["invoice_amount"] = result.invoice_amount
            if changes:
                self.repository.update_delivery(delivery_id, changes)
                logger.info(f"Delivery #{delivery_id} enriched from ledger: {changes}")
        return result

    def confirm_avoir(self, avoir_id: int, invoice_reference: Optional[str] = None, force_refresh: bool = False) -> VerificationResult:
        """Confirmation flow: a confirmed ledger match marks the avoir as verified."""
        avoir = self.repository.get_avoir(avoir_id)
        if not avoir:
            raise EntityNotFoundError("Avoir", avoir_id)

        reference = invoice_reference or avoir.invoice_reference
        owner = OwnerRef(kind=OwnerKind.AVOIR, id=avoir_id)
        result = self.verify(avoir.store_id, reference, None, force_refresh, owner)

        if result.exists:
            self.repository.update_avoir(avoir_id, {
                "nocodb_verified": True,
                "nocodb_verified_at": self._clock(),
            })
            logger.info(f"Avoir #{avoir_id} confirmed against ledger: {reference}")
        return result

    def set_avoir_verification(self, avoir_id: int, verified: bool) -> Avoir:
        """Administrative override. Devalidation leaves existing verification records untouched."""
        if not self.repository.get_avoir(avoir_id):
            raise EntityNotFoundError("Avoir", avoir_id)
        avoir = self.repository.update_avoir(avoir_id, {
            "nocodb_verified": verified,
            "nocodb_verified_at": self._clock() if verified else None,
        })
        logger.info(f"Avoir #{avoir_id} ledger verification set to {verified}")
        return avoir

    def _run(self, mode, store_id, reference, supplier_name, force_refresh, owner, columns) -> VerificationResult:
        try:
            reference = self.validate_reference(reference)
        except ReferenceValidationError:
            return VerificationResult(exists=False, match_type=MatchType.NONE, error_message=INVALID_REFERENCE)

        key = CacheKey.build(store_id, reference, supplier_name, mode)
        if not force_refresh:
            entry = self.cache.get(key)
            if entry is not None:
                logger.info(f"Cache hit: {key} exists={entry.exists}")
                result = VerificationResult(
                    exists=entry.exists,
                    match_type=entry.match_type,
                    invoice_reference=entry.invoice_reference,
                    invoice_amount=entry.amount,
                    supplier_name_matched=entry.supplier_name_matched,
                    cache_hit=True,
                )
                self._record_confirmation(owner, store_id, reference, supplier_name, result)
                return result

        try:
            config = self.resolve_config(store_id)
            result = None
            for column, match_type in columns(config):
                result = self._lookup(config, column, reference, supplier_name, match_type)
                if result is not None:
                    break
        except ConfigurationError as e:
            logger.warning(f"Verification skipped for store {store_id}: {e}")
            return VerificationResult(exists=False, match_type=MatchType.NONE, error_message=str(e))
        except LedgerError as e:
            logger.error(f"Ledger lookup failed for store {store_id}, reference {reference}: {e}")
            return VerificationResult(exists=False, match_type=MatchType.NONE, error_message=str(e))

        if result is None:
            result = VerificationResult(exists=False, match_type=MatchType.NONE)

        self.cache.store(
            key,
            exists=result.exists,
            match_type=result.match_type,
            amount=result.invoice_amount,
            supplier_name_matched=result.supplier_name_matched,
            invoice_reference=result.invoice_reference,
        )
        self._record_confirmation(owner, store_id, reference, supplier_name, result)
        return result

    def _lookup(self, config: StoreLedgerConfig, column: str, value: str, supplier_name: Optional[str], match_type: MatchType) -> Optional[VerificationResult]:
        search = self.ledger_client.search(config, column, value)
        if not search.found:
            return None

        columns = config.columns
        record = search.record
        found_supplier = record.get(columns.supplier_column)
        if supplier_name and found_supplier not in (None, "") and not supplier_matches(supplier_name, found_supplier):
            logger.info(f"Ledger row for {value} on {column} belongs to '{found_supplier}', not '{supplier_name}'")
            return None

        found_reference = record.get(columns.invoice_column)
        return VerificationResult(
            exists=True,
            match_type=match_type,
            invoice_reference=str(found_reference) if found_reference not in (None, "") else value,
            invoice_amount=parse_amount(record.get(columns.amount_column)),
            supplier_name_matched=str(found_supplier) if found_supplier not in (None, "") else None,
        )

    def _record_confirmation(self, owner: Optional[OwnerRef], store_id: int, reference: str, supplier_name: Optional[str], result: VerificationResult):
        if owner is None or not result.exists:
            return
        if self.repository.get_verification_record(owner):
            return
        if self.repository.get_owner_entity(owner) is None:
            logger.warning(f"Verification record skipped: {owner.kind.value} #{owner.id} does not exist")
            return
        self.repository.persist_verification_record(VerificationRecord(
            owner=owner,
            store_id=store_id,
            reference=reference,
            supplier_name=supplier_name,
            exists=True,
            match_type=result.match_type,
        ))

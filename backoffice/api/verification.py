from fastapi import APIRouter, Depends, HTTPException
from typing import List
import logging

from backoffice.api.deps import get_services
from backoffice.core.container import Services
from backoffice.core.errors import EntityNotFoundError
from backoffice.schemas.avoir import Avoir, AvoirVerificationUpdate
from backoffice.schemas.ledger import ColumnMap, StoreLedgerConfig
from backoffice.schemas.verification import (
    BatchVerifyItemResult,
    BatchVerifyRequest,
    EntityVerifyRequest,
    VerificationResult,
    VerifyInvoiceRequest,
)
from pydantic import BaseModel, ValidationError

router = APIRouter()
logger = logging.getLogger(__name__)

class LedgerConfigRequest(BaseModel):
    table_name: str
    columns: ColumnMap = ColumnMap()

@router.post("/verify-invoice", response_model=VerificationResult)
def verify_invoice(request: VerifyInvoiceRequest, services: Services = Depends(get_services)):
    return services.verification.verify_invoice(
        request.invoice_reference,
        request.store_id,
        request.supplier_name,
        request.force_refresh,
    )

@router.post("/verify-invoices", response_model=List[BatchVerifyItemResult])
def verify_invoices(request: BatchVerifyRequest, services: Services = Depends(get_services)):
    logger.info(f"Batch verification requested. Count: {len(request.items)}")
    return services.verification.verify_batch(request.items)

@router.post("/deliveries/{delivery_id}/verify-invoice", response_model=VerificationResult)
def verify_delivery_invoice(delivery_id: int, request: EntityVerifyRequest, services: Services = Depends(get_services)):
    has_reference = bool(request.invoice_reference and request.invoice_reference.strip())
    has_bl = bool(request.bl_number and request.bl_number.strip())
    if not has_reference and not has_bl:
        raise HTTPException(status_code=400, detail="Invoice reference or BL number required")
    try:
        return services.verification.verify_delivery(
            delivery_id,
            invoice_reference=request.invoice_reference,
            bl_number=request.bl_number,
            force_refresh=request.force_refresh,
        )
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.get("/avoirs/{avoir_id}", response_model=Avoir)
def get_avoir(avoir_id: int, services: Services = Depends(get_services)):
    avoir = services.repository.get_avoir(avoir_id)
    if not avoir:
        raise HTTPException(status_code=404, detail=f"Avoir #{avoir_id} not found")
    return avoir

@router.post("/avoirs/{avoir_id}/verify-invoice", response_model=VerificationResult)
def verify_avoir_invoice(avoir_id: int, request: EntityVerifyRequest, services: Services = Depends(get_services)):
    try:
        return services.verification.confirm_avoir(avoir_id, request.invoice_reference, request.force_refresh)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.put("/avoirs/{avoir_id}/ledger-verification", response_model=Avoir)
def update_avoir_verification(avoir_id: int, request: AvoirVerificationUpdate, services: Services = Depends(get_services)):
    try:
        return services.verification.set_avoir_verification(avoir_id, request.verified)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.put("/stores/{store_id}/ledger-config", response_model=StoreLedgerConfig)
def set_store_ledger_config(store_id: int, request: LedgerConfigRequest, services: Services = Depends(get_services)):
    try:
        config = StoreLedgerConfig(store_id=store_id, table_name=request.table_name, columns=request.columns)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    services.repository.set_store_ledger_config(config)
    logger.info(f"Ledger mapping updated for store {store_id}: table={config.table_name}")
    return config

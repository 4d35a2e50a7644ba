from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import NamedTuple, Optional, List
from datetime import datetime, timezone
import uuid

class VerificationMode(str, Enum):
    INVOICE = "invoice"
    BL = "bl"

class MatchType(str, Enum):
    INVOICE_REFERENCE = "invoice_reference"
    BL_NUMBER = "bl_number"
    NONE = "none"

class OwnerKind(str, Enum):
    DELIVERY = "delivery"
    AVOIR = "avoir"

class OwnerRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OwnerKind
    id: int

def normalize_reference(reference: str) -> str:
    return reference.strip().upper()

class CacheKey(NamedTuple):
    store_id: int
    reference: str
    supplier: str
    mode: VerificationMode

    @classmethod
    def build(cls, store_id: int, reference: str, supplier_name: Optional[str], mode: VerificationMode) -> "CacheKey":
        return cls(store_id, normalize_reference(reference), supplier_name or "any", mode)

class CacheEntry(BaseModel):
    key: CacheKey
    exists: bool
    match_type: MatchType
    amount: Optional[float] = None
    supplier_name_matched: Optional[str] = None
    invoice_reference: Optional[str] = None
    errorless: bool = True
    expires_at: datetime

class VerificationResult(BaseModel):
    exists: bool
    match_type: MatchType = MatchType.NONE
    invoice_reference: Optional[str] = None
    invoice_amount: Optional[float] = None
    supplier_name_matched: Optional[str] = None
    error_message: Optional[str] = None
    cache_hit: bool = False

    @property
    def is_indeterminate(self) -> bool:
        # An error message means the ledger could not answer; never a confirmed negative.
        return self.error_message is not None

class VerificationRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner: OwnerRef
    store_id: int
    reference: str
    supplier_name: Optional[str] = None
    exists: bool
    match_type: MatchType
    is_valid: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class VerifyInvoiceRequest(BaseModel):
    store_id: int
    invoice_reference: str
    supplier_name: Optional[str] = None
    force_refresh: bool = False

class BatchVerifyRequest(BaseModel):
    items: List[VerifyInvoiceRequest]

class BatchVerifyItemResult(BaseModel):
    store_id: int
    invoice_reference: str
    result: VerificationResult

class EntityVerifyRequest(BaseModel):
    invoice_reference: Optional[str] = None
    bl_number: Optional[str] = None
    force_refresh: bool = False

from enum import Enum
from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class AvoirStatus(str, Enum):
    PENDING_REQUEST = "pending_request"
    REQUESTED = "requested"
    RECEIVED = "received"

class Avoir(BaseModel):
    id: int
    store_id: int
    supplier_id: Optional[int] = None
    invoice_reference: Optional[str] = None
    amount: Optional[float] = None
    status: AvoirStatus = AvoirStatus.PENDING_REQUEST
    nocodb_verified: bool = False
    nocodb_verified_at: Optional[datetime] = None

class AvoirVerificationUpdate(BaseModel):
    verified: bool

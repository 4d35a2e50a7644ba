from enum import Enum
from pydantic import BaseModel, field_validator, ValidationInfo
from typing import Optional
from datetime import datetime

class DeliveryStatus(str, Enum):
    PLANNED = "planned"
    DELIVERED = "delivered"

class Delivery(BaseModel):
    id: int
    store_id: int
    supplier_id: Optional[int] = None
    order_id: Optional[int] = None
    status: DeliveryStatus = DeliveryStatus.PLANNED
    bl_number: Optional[str] = None
    bl_amount: Optional[float] = None
    invoice_reference: Optional[str] = None
    invoice_amount: Optional[float] = None
    reconciled: bool = False
    delivered_date: Optional[datetime] = None
    validated_at: Optional[datetime] = None

    @property
    def has_bl_number(self) -> bool:
        return bool(self.bl_number and self.bl_number.strip())

def blank_to_none(v):
    # Empty strings coming from forms clear the field
    if isinstance(v, str) and not v.strip():
        return None
    return v

class DeliveryCreate(BaseModel):
    store_id: int
    supplier_id: Optional[int] = None
    order_id: Optional[int] = None
    status: DeliveryStatus = DeliveryStatus.PLANNED
    bl_number: Optional[str] = None
    bl_amount: Optional[float] = None
    invoice_reference: Optional[str] = None

    @field_validator('bl_number', 'invoice_reference', 'bl_amount', mode='before')
    @classmethod
    def clear_blank(cls, v):
        return blank_to_none(v)

class DeliveryUpdate(BaseModel):
    supplier_id: Optional[int] = None
    order_id: Optional[int] = None
    status: Optional[DeliveryStatus] = None
    bl_number: Optional[str] = None
    bl_amount: Optional[float] = None
    invoice_reference: Optional[str] = None
    invoice_amount: Optional[float] = None
    reconciled: Optional[bool] = None
    validated_at: Optional[datetime] = None

    @field_validator('bl_number', 'invoice_reference', 'bl_amount', 'invoice_amount', 'validated_at', mode='before')
    @classmethod
    def clear_blank(cls, v):
        return blank_to_none(v)

    @field_validator('status', 'reconciled', mode='before')
    @classmethod
    def reject_null(cls, v, info: ValidationInfo):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

class BLData(BaseModel):
    bl_number: Optional[str] = None
    bl_amount: Optional[float] = None

    @field_validator('bl_number', 'bl_amount', mode='before')
    @classmethod
    def clear_blank(cls, v):
        v = blank_to_none(v)
        return v.strip() if isinstance(v, str) else v

from enum import Enum
from pydantic import BaseModel
from typing import Optional

class OrderStatus(str, Enum):
    PENDING = "pending"
    PLANNED = "planned"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

class Order(BaseModel):
    id: int
    store_id: int
    supplier_id: Optional[int] = None
    status: OrderStatus = OrderStatus.PENDING

class OrderCreate(BaseModel):
    store_id: int
    supplier_id: Optional[int] = None
    status: OrderStatus = OrderStatus.PENDING

class OrderSyncItem(BaseModel):
    order_id: int
    current_status: OrderStatus
    delivered_deliveries: int
    total_deliveries: int

class OrderSyncReport(BaseModel):
    problematic_orders: list[OrderSyncItem] = []
    fixed_orders: list[int] = []

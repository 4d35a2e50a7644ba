from fastapi import APIRouter, Body, Depends, HTTPException
from typing import Optional
import logging

from backoffice.api.deps import get_services
from backoffice.core.container import Services
from backoffice.core.errors import EntityNotFoundError
from backoffice.schemas.delivery import BLData, Delivery, DeliveryCreate, DeliveryUpdate
from backoffice.schemas.order import Order, OrderCreate, OrderSyncReport

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/orders", response_model=Order)
def create_order(request: OrderCreate, services: Services = Depends(get_services)):
    order = services.repository.create_order(request)
    logger.info(f"Order #{order.id} created for store {order.store_id}")
    return order

@router.get("/orders/{order_id}", response_model=Order)
def get_order(order_id: int, services: Services = Depends(get_services)):
    order = services.repository.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail=f"Order #{order_id} not found")
    return order

@router.post("/sync-order-delivery-status", response_model=OrderSyncReport)
def sync_order_delivery_status(services: Services = Depends(get_services)):
    return services.cascade.sync_order_statuses()

@router.post("/deliveries", response_model=Delivery)
def create_delivery(request: DeliveryCreate, services: Services = Depends(get_services)):
    if request.order_id is not None:
        order = services.repository.get_order(request.order_id)
        if not order:
            raise HTTPException(status_code=400, detail="Linked order does not exist")
        if order.store_id != request.store_id:
            raise HTTPException(status_code=400, detail=f"Cannot link a store {request.store_id} delivery to a store {order.store_id} order")
    delivery = services.repository.create_delivery(request)
    logger.info(f"Delivery #{delivery.id} created (order: {delivery.order_id})")
    return services.repository.get_delivery(delivery.id)

@router.get("/deliveries/{delivery_id}", response_model=Delivery)
def get_delivery(delivery_id: int, services: Services = Depends(get_services)):
    delivery = services.repository.get_delivery(delivery_id)
    if not delivery:
        raise HTTPException(status_code=404, detail=f"Delivery #{delivery_id} not found")
    return delivery

@router.put("/deliveries/{delivery_id}", response_model=Delivery)
def update_delivery(delivery_id: int, request: DeliveryUpdate, services: Services = Depends(get_services)):
    delivery = services.repository.get_delivery(delivery_id)
    if not delivery:
        raise HTTPException(status_code=404, detail=f"Delivery #{delivery_id} not found")

    changes = request.model_dump(exclude_unset=True)
    if changes.get("order_id") is not None:
        order = services.repository.get_order(changes["order_id"])
        if not order:
            raise HTTPException(status_code=400, detail="Linked order does not exist")
        if order.store_id != delivery.store_id:
            raise HTTPException(status_code=400, detail=f"Cannot link a store {delivery.store_id} delivery to a store {order.store_id} order")

    # The repository runs the status cascade after the write
    return services.repository.update_delivery(delivery_id, changes)

@router.post("/deliveries/{delivery_id}/validate", response_model=Delivery)
def validate_delivery(delivery_id: int, bl_data: Optional[BLData] = Body(None), services: Services = Depends(get_services)):
    try:
        return services.cascade.validate_delivery(delivery_id, bl_data)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.delete("/deliveries/{delivery_id}")
def delete_delivery(delivery_id: int, services: Services = Depends(get_services)):
    try:
        services.cascade.delete_delivery(delivery_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"message": "Delivery deleted successfully"}

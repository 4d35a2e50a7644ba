from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Union
from itertools import count
import threading
import logging

from backoffice.core.errors import EntityNotFoundError
from backoffice.schemas.avoir import Avoir
from backoffice.schemas.delivery import Delivery, DeliveryCreate, DeliveryStatus
from backoffice.schemas.ledger import StoreLedgerConfig
from backoffice.schemas.order import Order, OrderCreate
from backoffice.schemas.supplier import Supplier
from backoffice.schemas.verification import OwnerKind, OwnerRef, VerificationRecord

logger = logging.getLogger(__name__)

# listener(updated, previous); previous is None for a freshly created delivery
DeliveryListener = Callable[[Delivery, Optional[Delivery]], None]

class Repository(ABC):
    """
    Opaque entity store consumed by the verification core.
    Every delivery write (create or update) is followed by a call to each
    registered delivery listener, after the write itself is committed.
    """

    def __init__(self):
        self._delivery_listeners: List[DeliveryListener] = []

    def add_delivery_listener(self, listener: DeliveryListener):
        self._delivery_listeners.append(listener)

    def _notify_delivery_written(self, updated: Delivery, previous: Optional[Delivery]):
        for listener in self._delivery_listeners:
            listener(updated.model_copy(), previous)

    # Ledger configuration
    @abstractmethod
    def get_store_ledger_config(self, store_id: int) -> Optional[StoreLedgerConfig]:
        pass

    @abstractmethod
    def set_store_ledger_config(self, config: StoreLedgerConfig):
        pass

    # Verification records
    @abstractmethod
    def get_owner_entity(self, owner: OwnerRef) -> Optional[Union[Delivery, Avoir]]:
        pass

    @abstractmethod
    def get_verification_record(self, owner: OwnerRef) -> Optional[VerificationRecord]:
        pass

    @abstractmethod
    def persist_verification_record(self, record: VerificationRecord) -> VerificationRecord:
        """Insert unless a confirmed record already exists for the owner; returns the stored one."""

    @abstractmethod
    def list_verification_records(self) -> List[VerificationRecord]:
        pass

    # Suppliers
    @abstractmethod
    def add_supplier(self, supplier: Supplier) -> Supplier:
        pass

    @abstractmethod
    def get_supplier(self, supplier_id: int) -> Optional[Supplier]:
        pass

    # Orders
    @abstractmethod
    def create_order(self, data: OrderCreate) -> Order:
        pass

    @abstractmethod
    def get_order(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    def update_order(self, order_id: int, changes: Dict[str, Any]) -> Order:
        pass

    @abstractmethod
    def list_orders(self) -> List[Order]:
        pass

    # Deliveries
    @abstractmethod
    def create_delivery(self, data: DeliveryCreate) -> Delivery:
        pass

    @abstractmethod
    def get_delivery(self, delivery_id: int) -> Optional[Delivery]:
        pass

    @abstractmethod
    def update_delivery(self, delivery_id: int, changes: Dict[str, Any]) -> Delivery:
        pass

    @abstractmethod
    def delete_delivery(self, delivery_id: int) -> Delivery:
        pass

    @abstractmethod
    def list_deliveries(self, order_id: Optional[int] = None, status: Optional[DeliveryStatus] = None) -> List[Delivery]:
        pass

    # Avoirs
    @abstractmethod
    def add_avoir(self, avoir: Avoir) -> Avoir:
        pass

    @abstractmethod
    def get_avoir(self, avoir_id: int) -> Optional[Avoir]:
        pass

    @abstractmethod
    def update_avoir(self, avoir_id: int, changes: Dict[str, Any]) -> Avoir:
        pass


class InMemoryRepository(Repository):
    def __init__(self):
        super().__init__()
        self._lock = threading.RLock()
        self._ledger_configs: Dict[int, StoreLedgerConfig] = {}
        self._records: List[VerificationRecord] = []
        self._suppliers: Dict[int, Supplier] = {}
        self._orders: Dict[int, Order] = {}
        self._deliveries: Dict[int, Delivery] = {}
        self._avoirs: Dict[int, Avoir] = {}
        self._order_ids = count(1)
        self._delivery_ids = count(1)

    def get_store_ledger_config(self, store_id: int) -> Optional[StoreLedgerConfig]:
        return self._ledger_configs.get(store_id)

    def set_store_ledger_config(self, config: StoreLedgerConfig):
        with self._lock:
            self._ledger_configs[config.store_id] = config

    def get_owner_entity(self, owner: OwnerRef) -> Optional[Union[Delivery, Avoir]]:
        if owner.kind == OwnerKind.DELIVERY:
            return self.get_delivery(owner.id)
        return self.get_avoir(owner.id)

    def get_verification_record(self, owner: OwnerRef) -> Optional[VerificationRecord]:
        with self._lock:
            return next((r for r in self._records if r.owner == owner and r.exists), None)

    def persist_verification_record(self, record: VerificationRecord) -> VerificationRecord:
        with self._lock:
            existing = self.get_verification_record(record.owner)
            if existing and record.exists:
                return existing
            self._records.append(record)
            logger.info(f"Verification record stored for {record.owner.kind.value} #{record.owner.id}: {record.reference}")
            return record

    def list_verification_records(self) -> List[VerificationRecord]:
        with self._lock:
            return list(self._records)

    def add_supplier(self, supplier: Supplier) -> Supplier:
        with self._lock:
            self._suppliers[supplier.id] = supplier
        return supplier

    def get_supplier(self, supplier_id: int) -> Optional[Supplier]:
        return self._suppliers.get(supplier_id)

    def create_order(self, data: OrderCreate) -> Order:
        with self._lock:
            order = Order(id=next(self._order_ids), **data.model_dump())
            self._orders[order.id] = order
            return order.model_copy()

    def get_order(self, order_id: int) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy() if order else None

    def update_order(self, order_id: int, changes: Dict[str, Any]) -> Order:
        with self._lock:
            order = self._orders.get(order_id)
            if not order:
                raise EntityNotFoundError("Order", order_id)
            updated = Order.model_validate({**order.model_dump(), **changes})
            self._orders[order_id] = updated
            return updated.model_copy()

    def list_orders(self) -> List[Order]:
        with self._lock:
            return [o.model_copy() for o in self._orders.values()]

    def create_delivery(self, data: DeliveryCreate) -> Delivery:
        with self._lock:
            delivery = Delivery(id=next(self._delivery_ids), **data.model_dump())
            self._deliveries[delivery.id] = delivery
        self._notify_delivery_written(delivery, None)
        return delivery.model_copy()

    def get_delivery(self, delivery_id: int) -> Optional[Delivery]:
        delivery = self._deliveries.get(delivery_id)
        return delivery.model_copy() if delivery else None

    def update_delivery(self, delivery_id: int, changes: Dict[str, Any]) -> Delivery:
        with self._lock:
            previous = self._deliveries.get(delivery_id)
            if not previous:
                raise EntityNotFoundError("Delivery", delivery_id)
            updated = Delivery.model_validate({**previous.model_dump(), **changes})
            self._deliveries[delivery_id] = updated
        self._notify_delivery_written(updated, previous)
        return self.get_delivery(delivery_id)

    def delete_delivery(self, delivery_id: int) -> Delivery:
        with self._lock:
            delivery = self._deliveries.pop(delivery_id, None)
            if not delivery:
                raise EntityNotFoundError("Delivery", delivery_id)
            return delivery

    def list_deliveries(self, order_id: Optional[int] = None, status: Optional[DeliveryStatus] = None) -> List[Delivery]:
        with self._lock:
            deliveries = list(self._deliveries.values())
        if order_id is not None:
            deliveries = [d for d in deliveries if d.order_id == order_id]
        if status is not None:
            deliveries = [d for d in deliveries if d.status == status]
        return [d.model_copy() for d in deliveries]

    def add_avoir(self, avoir: Avoir) -> Avoir:
        with self._lock:
            self._avoirs[avoir.id] = avoir
        return avoir.model_copy()

    def get_avoir(self, avoir_id: int) -> Optional[Avoir]:
        avoir = self._avoirs.get(avoir_id)
        return avoir.model_copy() if avoir else None

    def update_avoir(self, avoir_id: int, changes: Dict[str, Any]) -> Avoir:
        with self._lock:
            avoir = self._avoirs.get(avoir_id)
            if not avoir:
                raise EntityNotFoundError("Avoir", avoir_id)
            updated = Avoir.model_validate({**avoir.model_dump(), **changes})
            self._avoirs[avoir_id] = updated
            return updated.model_copy()

from typing import Callable, Dict, List, Optional
from datetime import datetime
import logging

from backoffice.core.cache import utc_now
from backoffice.core.errors import CascadeFailure, EntityNotFoundError
from backoffice.db.repository import Repository
from backoffice.schemas.delivery import BLData, Delivery, DeliveryStatus
from backoffice.schemas.order import OrderStatus, OrderSyncItem, OrderSyncReport

logger = logging.getLogger(__name__)

# AUTHORITATIVE STATUS CASCADE – DO NOT DUPLICATE
# Every delivery write reaches on_delivery_status_changed through the repository
# listener; call sites never propagate order status themselves.

class StatusCascadeEngine:
    def __init__(self, repository: Repository, clock: Callable[[], datetime] = utc_now):
        self.repository = repository
        self._clock = clock
        repository.add_delivery_listener(self.on_delivery_status_changed)

    def validate_delivery(self, delivery_id: int, bl_data: Optional[BLData] = None) -> Delivery:
        """
        Mark a delivery as delivered, optionally recording its BL number/amount.
        Validating an already delivered delivery only re-runs the order sync
        and auto-reconciliation, both of which are idempotent.
        """
        delivery = self.repository.get_delivery(delivery_id)
        if not delivery:
            raise EntityNotFoundError("Delivery", delivery_id)

        if delivery.status == DeliveryStatus.DELIVERED:
            logger.info(f"Delivery #{delivery_id} already validated, re-checking order and reconciliation")
            self._sync_order(delivery)
            self._auto_reconcile(delivery)
            return self.repository.get_delivery(delivery_id)

        now = self._clock()
        changes = {
            "status": DeliveryStatus.DELIVERED,
            "delivered_date": now,
            "validated_at": now,
        }
        if bl_data:
            if bl_data.bl_number:
                changes["bl_number"] = bl_data.bl_number
            if bl_data.bl_amount is not None:
                changes["bl_amount"] = bl_data.bl_amount

        logger.info(f"Validating delivery #{delivery_id}")
        return self.repository.update_delivery(delivery_id, changes)

    def on_delivery_status_changed(self, delivery: Delivery, previous: Optional[Delivery] = None):
        # Writes that leave status and order link alone do not touch the order.
        if previous is None or previous.status != delivery.status or previous.order_id != delivery.order_id:
            # Primary step: failures propagate to the caller, the delivery write is already committed.
            self._sync_order(delivery)

        # Secondary step: best effort, only on becoming delivered or on a new BL number.
        if previous is None or previous.status != DeliveryStatus.DELIVERED or previous.bl_number != delivery.bl_number:
            self._auto_reconcile(delivery)

    def delete_delivery(self, delivery_id: int) -> Delivery:
        """Delete a delivery; its order goes back to pending when no other delivery remains linked."""
        deleted = self.repository.delete_delivery(delivery_id)
        logger.info(f"Delivery #{delivery_id} deleted")

        if deleted.order_id is None:
            return deleted
        if self.repository.list_deliveries(order_id=deleted.order_id):
            return deleted

        order = self.repository.get_order(deleted.order_id)
        if order and order.status != OrderStatus.PENDING:
            self.repository.update_order(order.id, {"status": OrderStatus.PENDING})
            logger.info(f"Order #{order.id} reverted to pending: last delivery #{delivery_id} removed")
        return deleted

    def sync_order_statuses(self) -> OrderSyncReport:
        """Repair sweep: every order with a delivered delivery ends up delivered. Safe to rerun."""
        by_order: Dict[int, List[Delivery]] = {}
        for delivery in self.repository.list_deliveries(status=DeliveryStatus.DELIVERED):
            if delivery.order_id is not None:
                by_order.setdefault(delivery.order_id, []).append(delivery)

        report = OrderSyncReport()
        for order_id, delivered in sorted(by_order.items()):
            order = self.repository.get_order(order_id)
            if not order or order.status == OrderStatus.DELIVERED:
                continue

            report.problematic_orders.append(OrderSyncItem(
                order_id=order_id,
                current_status=order.status,
                delivered_deliveries=len(delivered),
                total_deliveries=len(self.repository.list_deliveries(order_id=order_id)),
            ))
            try:
                self.repository.update_order(order_id, {"status": OrderStatus.DELIVERED})
            except EntityNotFoundError as e:
                logger.error(f"Failed to fix order #{order_id}: {e}")
                continue
            report.fixed_orders.append(order_id)
            logger.info(f"Fixed order #{order_id} status to 'delivered'")

        logger.info(f"Order/delivery sync COMPLETED. Found: {len(report.problematic_orders)}, fixed: {len(report.fixed_orders)}")
        return report

    def _sync_order(self, delivery: Delivery):
        if delivery.order_id is None:
            return
        order = self.repository.get_order(delivery.order_id)
        if not order:
            logger.warning(f"Delivery #{delivery.id} references missing order #{delivery.order_id}")
            return

        if delivery.status == DeliveryStatus.DELIVERED:
            if order.status != OrderStatus.DELIVERED:
                self.repository.update_order(order.id, {"status": OrderStatus.DELIVERED})
                logger.info(f"Order #{order.id} marked delivered after delivery #{delivery.id}")
        elif order.status == OrderStatus.PENDING:
            self.repository.update_order(order.id, {"status": OrderStatus.PLANNED})
            logger.info(f"Order #{order.id} planned: delivery #{delivery.id} linked")

    def _auto_reconcile(self, delivery: Delivery):
        if delivery.status != DeliveryStatus.DELIVERED or not delivery.has_bl_number or delivery.reconciled:
            return
        try:
            supplier = self.repository.get_supplier(delivery.supplier_id) if delivery.supplier_id else None
            if not supplier or not supplier.automatic_reconciliation:
                return
            self.repository.update_delivery(delivery.id, {
                "reconciled": True,
                "validated_at": self._clock(),
            })
            logger.info(f"Auto-reconciliation: delivery #{delivery.id} validated for supplier {supplier.name}")
        except Exception as e:
            failure = CascadeFailure(delivery.id, "auto-reconciliation", e)
            logger.error(str(failure), exc_info=True)

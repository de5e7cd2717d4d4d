# dx_core/orders/selectors.py
from __future__ import annotations

from uuid import UUID

from dx_core.common.api.exceptions import NotFoundError
from dx_core.orders.models import OrderItem


def get_order_item(*, hospital_id: UUID, order_item_id: UUID) -> OrderItem:
    try:
        return OrderItem.objects.select_related("order").get(id=order_item_id, hospital_id=hospital_id)
    except OrderItem.DoesNotExist:
        raise NotFoundError("Order item")

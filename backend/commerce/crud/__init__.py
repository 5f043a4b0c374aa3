"""CRUD 操作模块"""
from .order import add_order, get_order, list_orders, transition_status
from .payment import (
    add_payment,
    get_active_for_order,
    get_by_transaction_id,
    get_latest_for_order,
    get_payment,
    list_payments,
    list_stale,
    list_unreconciled,
    holds_claim,
    mark_processing,
)
from .payment import resolve as resolve_payment
from .product import (
    create_product,
    get_product,
    list_products,
    reduce_stock,
    restore_stock,
)
from .user import (
    create as create_user,
)
from .user import (
    get_by_email as get_user_by_email,
)
from .user import (
    get_or_create_by_email as get_or_create_user_by_email,
)

__all__ = [
    "add_order",
    "get_order",
    "list_orders",
    "transition_status",
    "add_payment",
    "get_active_for_order",
    "get_by_transaction_id",
    "get_latest_for_order",
    "get_payment",
    "list_payments",
    "list_stale",
    "list_unreconciled",
    "holds_claim",
    "mark_processing",
    "resolve_payment",
    "create_product",
    "get_product",
    "list_products",
    "reduce_stock",
    "restore_stock",
    "create_user",
    "get_user_by_email",
    "get_or_create_user_by_email",
]

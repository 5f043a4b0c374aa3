"""
数据库模型定义模块

本模块使用 SQLModel 定义所有数据库表结构。

模型按功能拆分：
- user.py: 用户模型
- product.py: 商品模型（库存）
- order.py: 订单 / 订单明细模型与状态机
- payment.py: 支付模型
"""
from sqlmodel import SQLModel

from .base import utc_now
from .order import ORDER_TRANSITIONS, Order, OrderItem, can_transition
from .payment import Payment
from .product import Product
from .user import User

__all__ = [
    "SQLModel",
    "utc_now",
    "User",
    "Product",
    "Order",
    "OrderItem",
    "ORDER_TRANSITIONS",
    "can_transition",
    "Payment",
]

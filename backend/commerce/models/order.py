"""
订单模型模块

定义订单与订单明细的数据库模型，以及订单状态机的合法流转表。
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlmodel import Field, Relationship, SQLModel

from commerce.enums import OrderStatus

from .base import money_column, utc_now

# 订单状态机：key 为当前状态，value 为允许进入的目标状态
# 终态（COMPLETED / CANCELLED）不在表中，任何流转都会被拒绝
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.COMPLETED}),
}


def can_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    """判断订单状态是否允许从 from_status 流转到 to_status"""
    return to_status in ORDER_TRANSITIONS.get(OrderStatus(from_status), frozenset())


class Order(SQLModel, table=True):
    """
    订单模型

    字段说明：
    - id: 主键（自增）
    - user_id: 下单用户 ID（外键）
    - total_amount: 订单总金额，创建时由明细小计求和得出，之后不再重算
    - status: 订单状态（见 ORDER_TRANSITIONS）
    - shipping_address: 收货地址
    - notes: 备注（可选）
    - items: 订单明细，按插入顺序（即结算请求中的顺序）返回
    """
    __tablename__ = "orders"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )

    total_amount: Decimal = Field(
        default=Decimal("0.00"),
        sa_column=money_column(),
    )
    status: OrderStatus = Field(
        default=OrderStatus.PENDING,
        sa_column=Column(String(16), index=True, nullable=False),
    )
    shipping_address: str = Field(sa_column=Column(Text, nullable=False))
    notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    items: list["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"order_by": "OrderItem.id", "lazy": "selectin"},
    )


class OrderItem(SQLModel, table=True):
    """
    订单明细模型

    price 为结算时的商品单价快照，后续商品改价不影响历史订单。
    subtotal = price * quantity。
    """
    __tablename__ = "order_items"
    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    product_id: int = Field(
        sa_column=Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    )
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    price: Decimal = Field(sa_column=money_column())
    subtotal: Decimal = Field(sa_column=money_column())

    order: Optional[Order] = Relationship(back_populates="items")

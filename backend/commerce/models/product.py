"""
商品模型模块

商品目录只是协作方，这里只保留结算链路需要的字段：
名称、单价、可用库存。
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlmodel import Field, SQLModel

from .base import money_column, utc_now


class Product(SQLModel, table=True):
    """
    商品模型

    库存 stock 只能通过 crud.product.reduce_stock / restore_stock 修改，
    数据库层面也加了 stock >= 0 的约束兜底。
    """
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    price: Decimal = Field(
        default=Decimal("0.00"),
        sa_column=money_column(),
    )
    stock: int = Field(default=0, sa_column=Column(Integer, nullable=False))

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

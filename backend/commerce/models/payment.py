"""
支付模型模块

一个订单同一时间最多只有一笔非 FAILED 的支付记录，
由部分唯一索引 uq_payments_order_active 保证。
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlmodel import Field, SQLModel

from commerce.enums import PaymentMethod, PaymentStatus

from .base import money_column, utc_now

_ACTIVE_PAYMENT = text("status <> 'FAILED'")


class Payment(SQLModel, table=True):
    """
    支付模型

    字段说明：
    - order_id / user_id: 关联订单与付款用户
    - amount: 支付金额，创建时从订单总额复制，不接受客户端传入
    - method: 支付方式
    - status: 支付状态，终态（SUCCESS / FAILED）只会写入一次
    - transaction_id: 网关交易号（唯一），回调通过它定位支付
    - paid_at: 支付成功时间
    - failed_reason: 失败原因
    - processing_started_at: 进入 PROCESSING 的时间，恢复任务据此判断是否卡住
    - settlement_attempts: 结算认领次数；每次认领加一，结算在扣款前校验自己仍持有最新一次认领
    """
    __tablename__ = "payments"
    __table_args__ = (
        Index(
            "uq_payments_order_active",
            "order_id",
            unique=True,
            postgresql_where=_ACTIVE_PAYMENT,
            sqlite_where=_ACTIVE_PAYMENT,
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    user_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    amount: Decimal = Field(sa_column=money_column())
    method: PaymentMethod = Field(sa_column=Column(String(32), nullable=False))
    status: PaymentStatus = Field(
        default=PaymentStatus.PENDING,
        sa_column=Column(String(16), index=True, nullable=False),
    )
    transaction_id: str = Field(
        sa_column=Column(String(64), unique=True, index=True, nullable=False)
    )
    paid_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    failed_reason: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True)
    )
    processing_started_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    settlement_attempts: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default="0")
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

"""
API 请求/响应数据模型（Schema）

这些模型不是数据库表，只用于 API 数据交换。
金额字段统一为 Decimal，JSON 中序列化为字符串，避免浮点误差。
"""
from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

from commerce.enums import OrderStatus, PaymentMethod, PaymentStatus

# ============================================================
# 通用
# ============================================================


class TokenPayload(BaseModel):
    """JWT 载荷：sub 为用户 ID"""
    sub: str | None = None


class ApiEnvelope(BaseModel):
    """
    API 统一响应格式

        {"code": 0, "message": "success", "data": {...}}
        {"code": 400202, "message": "Insufficient stock", "data": null}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


class PageInfo(BaseModel):
    """分页信息"""
    count: int  # 总记录数
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def build(cls, *, count: int, page: int, page_size: int) -> PageInfo:
        return cls(
            count=count,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(count / page_size) if page_size else 0,
        )


# ============================================================
# 商品
# ============================================================


class ProductCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    stock: int = Field(default=0, ge=0)


class ProductData(BaseModel):
    id: int
    name: str
    price: Decimal
    stock: int
    created_at: datetime
    updated_at: datetime


class ProductsData(PageInfo):
    data: list[ProductData]


# ============================================================
# 订单
# ============================================================


class CheckoutItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class CheckoutRequest(BaseModel):
    """
    结算请求

    items 为空时由服务层返回 EmptyCart（而不是 422），与其他业务错误保持一致。
    """
    items: list[CheckoutItemRequest]
    shipping_address: str = Field(min_length=1)
    notes: str | None = None


class OrderStatusUpdateRequest(BaseModel):
    # 使用 str 而不是枚举：非法值由服务层返回 InvalidOrderStatus
    status: str = Field(min_length=1, max_length=16)


class OrderItemData(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal  # 下单时的单价快照
    subtotal: Decimal


class OrderData(BaseModel):
    id: int
    user_id: int
    total_amount: Decimal
    status: OrderStatus
    shipping_address: str
    notes: str | None = None
    items: list[OrderItemData]
    created_at: datetime
    updated_at: datetime


class OrdersData(PageInfo):
    data: list[OrderData]


# ============================================================
# 支付
# ============================================================


class PaymentCreateRequest(BaseModel):
    order_id: int
    # 使用 str 而不是枚举：非法值由服务层返回 InvalidPaymentMethod
    method: str = Field(min_length=1, max_length=32)


class PaymentCallbackRequest(BaseModel):
    """网关回调：只接受终态"""
    transaction_id: str = Field(min_length=1, max_length=64)
    status: Literal["SUCCESS", "FAILED"]
    failed_reason: str | None = Field(default=None, max_length=255)


class PaymentData(BaseModel):
    id: int
    order_id: int
    user_id: int
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: str
    paid_at: datetime | None = None
    failed_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class PaymentsData(PageInfo):
    data: list[PaymentData]

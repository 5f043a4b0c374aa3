"""
管理员路由模块

查询全部订单与支付（需要 admin 角色）。
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from commerce.api.deps import AdminUser, OrderServiceDep, PaymentServiceDep, SessionDep
from commerce.api.routes.orders import to_orders_data
from commerce.api.routes.payments import to_payments_data
from commerce.api.schemas import ApiEnvelope

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/orders", response_model=ApiEnvelope)
def list_all_orders(
    session: SessionDep,
    _: AdminUser,
    orders: OrderServiceDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    status: str | None = Query(default=None),
) -> ApiEnvelope:
    """全部订单（按创建时间倒序），可按状态过滤"""
    rows, count = orders.list_orders(
        session=session, page=page, page_size=page_size, status=status
    )
    return ApiEnvelope(data=to_orders_data(rows, count, page, page_size))


@router.get("/payments", response_model=ApiEnvelope)
def list_all_payments(
    session: SessionDep,
    _: AdminUser,
    payments: PaymentServiceDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    status: str | None = Query(default=None),
    order_id: int | None = Query(default=None),
) -> ApiEnvelope:
    """全部支付（按创建时间倒序），可按状态 / 订单过滤"""
    rows, count = payments.list_payments(
        session=session,
        page=page,
        page_size=page_size,
        status=status,
        order_id=order_id,
    )
    return ApiEnvelope(data=to_payments_data(rows, count, page, page_size))

"""
订单路由模块

处理订单相关的 API 端点：
- 结算下单
- 查询订单列表（分页）/ 订单详情
- 更新订单状态 / 取消订单
- 查询订单的支付
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from commerce.api.deps import (
    CurrentUser,
    OrderServiceDep,
    PaymentServiceDep,
    SessionDep,
    is_admin,
)
from commerce.api.routes.payments import to_payment_data
from commerce.api.schemas import (
    ApiEnvelope,
    CheckoutRequest,
    OrderData,
    OrderItemData,
    OrdersData,
    OrderStatusUpdateRequest,
    PageInfo,
)
from commerce.models import Order
from commerce.services.order_service import CartItem

router = APIRouter(prefix="/orders", tags=["orders"])


def to_order_data(order: Order) -> OrderData:
    """订单模型 -> 响应数据（明细按下单顺序）"""
    return OrderData(
        id=order.id,
        user_id=order.user_id,
        total_amount=order.total_amount,
        status=order.status,
        shipping_address=order.shipping_address,
        notes=order.notes,
        items=[
            OrderItemData(
                id=item.id,
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.price,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def to_orders_data(rows: list[Order], count: int, page: int, page_size: int) -> OrdersData:
    page_info = PageInfo.build(count=count, page=page, page_size=page_size)
    return OrdersData(data=[to_order_data(o) for o in rows], **page_info.model_dump())


@router.post("/checkout", response_model=ApiEnvelope)
def checkout(
    session: SessionDep,
    current_user: CurrentUser,
    orders: OrderServiceDep,
    body: CheckoutRequest,
) -> ApiEnvelope:
    """
    结算下单

    扣减所有商品库存并创建 PENDING 订单；任一商品失败则整单不生效。

    请求路径: POST /api/v1/orders/checkout
    """
    order = orders.checkout(
        session=session,
        user_id=current_user.id,
        items=[CartItem(product_id=i.product_id, quantity=i.quantity) for i in body.items],
        shipping_address=body.shipping_address,
        notes=body.notes,
    )
    return ApiEnvelope(data=to_order_data(order))


@router.get("", response_model=ApiEnvelope)
def list_my_orders(
    session: SessionDep,
    current_user: CurrentUser,
    orders: OrderServiceDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    status: str | None = Query(default=None),
) -> ApiEnvelope:
    """
    当前用户的订单列表（按创建时间倒序）

    请求路径: GET /api/v1/orders?page=1&page_size=10&status=PENDING
    """
    rows, count = orders.list_orders(
        session=session,
        page=page,
        page_size=page_size,
        user_id=current_user.id,
        status=status,
    )
    return ApiEnvelope(data=to_orders_data(rows, count, page, page_size))


@router.get("/{order_id}", response_model=ApiEnvelope)
def get_order(
    session: SessionDep, current_user: CurrentUser, orders: OrderServiceDep, order_id: int
) -> ApiEnvelope:
    """订单详情；非本人订单返回 403（管理员除外）"""
    order = orders.get_order(
        session=session,
        order_id=order_id,
        user_id=current_user.id,
        is_admin=is_admin(current_user),
    )
    return ApiEnvelope(data=to_order_data(order))


@router.patch("/{order_id}/status", response_model=ApiEnvelope)
def update_order_status(
    session: SessionDep,
    current_user: CurrentUser,
    orders: OrderServiceDep,
    order_id: int,
    body: OrderStatusUpdateRequest,
) -> ApiEnvelope:
    """
    更新订单状态

    普通用户只能取消自己的订单；发货 / 完成等流转需要管理员。

    请求路径: PATCH /api/v1/orders/{order_id}/status
    """
    order = orders.update_status(
        session=session,
        order_id=order_id,
        user_id=current_user.id,
        status=body.status,
        is_admin=is_admin(current_user),
    )
    return ApiEnvelope(data=to_order_data(order))


@router.post("/{order_id}/cancel", response_model=ApiEnvelope)
def cancel_order(
    session: SessionDep, current_user: CurrentUser, orders: OrderServiceDep, order_id: int
) -> ApiEnvelope:
    """取消 PENDING 订单并归还库存"""
    order = orders.cancel_order(session=session, order_id=order_id, user_id=current_user.id)
    return ApiEnvelope(data=to_order_data(order))


@router.get("/{order_id}/payment", response_model=ApiEnvelope)
def get_order_payment(
    session: SessionDep,
    current_user: CurrentUser,
    payments: PaymentServiceDep,
    order_id: int,
) -> ApiEnvelope:
    """订单最近一笔支付"""
    payment = payments.get_payment_by_order(
        session=session,
        order_id=order_id,
        user_id=current_user.id,
        is_admin=is_admin(current_user),
    )
    return ApiEnvelope(data=to_payment_data(payment))

"""
支付路由模块

- 创建支付（立即返回 PENDING，结算在后台进行）
- 查询支付列表 / 详情
- 网关回调
"""
from __future__ import annotations

import hmac

from fastapi import APIRouter, Header, Query

from commerce.api.deps import CurrentUser, PaymentServiceDep, SessionDep, is_admin
from commerce.api.errors import InvalidCallbackSignature
from commerce.api.schemas import (
    ApiEnvelope,
    PageInfo,
    PaymentCallbackRequest,
    PaymentCreateRequest,
    PaymentData,
    PaymentsData,
)
from commerce.core.config import settings
from commerce.enums import PaymentStatus
from commerce.models import Payment

router = APIRouter(prefix="/payments", tags=["payments"])


def to_payment_data(payment: Payment) -> PaymentData:
    return PaymentData(
        id=payment.id,
        order_id=payment.order_id,
        user_id=payment.user_id,
        amount=payment.amount,
        method=payment.method,
        status=payment.status,
        transaction_id=payment.transaction_id,
        paid_at=payment.paid_at,
        failed_reason=payment.failed_reason,
        created_at=payment.created_at,
        updated_at=payment.updated_at,
    )


def to_payments_data(rows: list[Payment], count: int, page: int, page_size: int) -> PaymentsData:
    page_info = PageInfo.build(count=count, page=page, page_size=page_size)
    return PaymentsData(data=[to_payment_data(p) for p in rows], **page_info.model_dump())


@router.post("", response_model=ApiEnvelope)
def create_payment(
    session: SessionDep,
    current_user: CurrentUser,
    payments: PaymentServiceDep,
    body: PaymentCreateRequest,
) -> ApiEnvelope:
    """
    为订单创建支付

    金额取订单总额；返回的支付状态为 PENDING，结果需轮询或等待回调。

    请求路径: POST /api/v1/payments
    """
    payment = payments.create_payment(
        session=session,
        user_id=current_user.id,
        order_id=body.order_id,
        method=body.method,
    )
    return ApiEnvelope(data=to_payment_data(payment))


@router.get("", response_model=ApiEnvelope)
def list_my_payments(
    session: SessionDep,
    current_user: CurrentUser,
    payments: PaymentServiceDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    status: str | None = Query(default=None),
    order_id: int | None = Query(default=None),
) -> ApiEnvelope:
    """当前用户的支付列表（按创建时间倒序）"""
    rows, count = payments.list_payments(
        session=session,
        page=page,
        page_size=page_size,
        user_id=current_user.id,
        status=status,
        order_id=order_id,
    )
    return ApiEnvelope(data=to_payments_data(rows, count, page, page_size))


@router.post("/callback", response_model=ApiEnvelope)
def payment_callback(
    session: SessionDep,
    payments: PaymentServiceDep,
    body: PaymentCallbackRequest,
    authorization: str | None = Header(default=None),
) -> ApiEnvelope:
    """
    网关回调

    配置了 PAYMENT_CALLBACK_SECRET 时，Authorization 需为该密钥（可带 Bearer 前缀）。
    支付已是终态时返回 PaymentAlreadyProcessed，网关据此停止重试。

    请求路径: POST /api/v1/payments/callback
    """
    secret = settings.PAYMENT_CALLBACK_SECRET
    if secret:
        provided = (authorization or "").removeprefix("Bearer ").strip()
        if not hmac.compare_digest(provided.encode(), secret.encode()):
            raise InvalidCallbackSignature()

    payment = payments.process_callback(
        session=session,
        transaction_id=body.transaction_id,
        status=PaymentStatus(body.status),
        failed_reason=body.failed_reason,
    )
    return ApiEnvelope(data=to_payment_data(payment))


@router.get("/{payment_id}", response_model=ApiEnvelope)
def get_payment(
    session: SessionDep,
    current_user: CurrentUser,
    payments: PaymentServiceDep,
    payment_id: int,
) -> ApiEnvelope:
    payment = payments.get_payment(
        session=session,
        payment_id=payment_id,
        user_id=current_user.id,
        is_admin=is_admin(current_user),
    )
    return ApiEnvelope(data=to_payment_data(payment))

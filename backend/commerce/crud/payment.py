"""
支付 CRUD 操作

mark_processing / resolve 都是条件更新：只在支付仍处于指定的非终态时写入。
mark_processing 额外比较认领次数，同一笔支付同一时刻只有一个结算者能扣款。
结算任务与网关回调竞争同一笔支付时，只有一方的 UPDATE 能命中，
另一方拿到 False，由服务层转换为 PaymentAlreadyProcessed。
"""
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import or_, update
from sqlmodel import Session, func, select

from commerce.enums import PAYMENT_OPEN_STATUSES, OrderStatus, PaymentStatus
from commerce.models import Order, Payment, utc_now


def get_payment(*, session: Session, payment_id: int) -> Payment | None:
    return session.get(Payment, payment_id)


def get_by_transaction_id(*, session: Session, transaction_id: str) -> Payment | None:
    statement = select(Payment).where(Payment.transaction_id == transaction_id)
    return session.exec(statement).first()


def get_active_for_order(*, session: Session, order_id: int) -> Payment | None:
    """查询订单当前有效（非 FAILED）的支付"""
    statement = select(Payment).where(
        Payment.order_id == order_id,
        Payment.status != PaymentStatus.FAILED.value,
    )
    return session.exec(statement).first()


def get_latest_for_order(*, session: Session, order_id: int) -> Payment | None:
    """查询订单最近一笔支付（含失败记录）"""
    statement = (
        select(Payment)
        .where(Payment.order_id == order_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    return session.exec(statement).first()


def add_payment(*, session: Session, payment: Payment) -> Payment:
    """写入支付记录（flush，不提交）"""
    session.add(payment)
    session.flush()
    return payment


def list_payments(
    *,
    session: Session,
    offset: int,
    limit: int,
    user_id: int | None = None,
    status: PaymentStatus | None = None,
    order_id: int | None = None,
) -> tuple[list[Payment], int]:
    """分页查询支付，按创建时间倒序；user_id 为空时查询全部"""
    conditions = []
    if user_id is not None:
        conditions.append(Payment.user_id == user_id)
    if status is not None:
        conditions.append(Payment.status == status.value)
    if order_id is not None:
        conditions.append(Payment.order_id == order_id)

    count = session.exec(
        select(func.count()).select_from(Payment).where(*conditions)
    ).one()
    rows = session.exec(
        select(Payment)
        .where(*conditions)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset(offset)
        .limit(limit)
    ).all()
    return list(rows), count


def mark_processing(
    *,
    session: Session,
    payment_id: int,
    attempt: int,
    from_statuses: Iterable[PaymentStatus] = (PaymentStatus.PENDING,),
) -> bool:
    """
    认领结算：from_statuses -> PROCESSING，认领次数 attempt -> attempt + 1

    attempt 是调用方读到的 settlement_attempts。两个结算者读到同一个值时，
    只有先写入的一方命中；恢复任务接手 PROCESSING 时也会让原结算者的认领失效。
    """
    now = utc_now()
    stmt = (
        update(Payment)
        .where(
            Payment.id == payment_id,
            Payment.status.in_([s.value for s in from_statuses]),  # type: ignore[attr-defined]
            Payment.settlement_attempts == attempt,
        )
        .values(
            status=PaymentStatus.PROCESSING.value,
            processing_started_at=now,
            settlement_attempts=attempt + 1,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1


def holds_claim(*, session: Session, payment_id: int, attempt: int) -> bool:
    """支付仍为 PROCESSING 且最新一次认领就是 attempt"""
    statement = select(func.count()).select_from(Payment).where(
        Payment.id == payment_id,
        Payment.status == PaymentStatus.PROCESSING.value,
        Payment.settlement_attempts == attempt,
    )
    return session.exec(statement).one() == 1


def resolve(
    *,
    session: Session,
    payment_id: int,
    status: PaymentStatus,
    failed_reason: str | None = None,
) -> bool:
    """
    条件更新：非终态 -> SUCCESS / FAILED

    UPDATE payments SET status = :status ... WHERE id = :id AND status IN ('PENDING', 'PROCESSING')

    Returns:
        True 表示本次写入了终态；False 表示支付已被其他写入方处理
    """
    if status not in (PaymentStatus.SUCCESS, PaymentStatus.FAILED):
        raise ValueError(f"{status} is not a terminal payment status")

    now = utc_now()
    values: dict[str, object] = {"status": status.value, "updated_at": now}
    if status == PaymentStatus.SUCCESS:
        values["paid_at"] = now
    else:
        values["failed_reason"] = failed_reason

    stmt = (
        update(Payment)
        .where(
            Payment.id == payment_id,
            Payment.status.in_([s.value for s in PAYMENT_OPEN_STATUSES]),  # type: ignore[attr-defined]
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1


def list_stale(*, session: Session, before: datetime, limit: int = 100) -> list[Payment]:
    """查询卡住的支付：PENDING 创建于 before 之前，或 PROCESSING 开始于 before 之前"""
    statement = (
        select(Payment)
        .where(
            or_(
                (Payment.status == PaymentStatus.PENDING.value) & (Payment.created_at < before),
                (Payment.status == PaymentStatus.PROCESSING.value)
                & (Payment.processing_started_at < before),
            )
        )
        .order_by(Payment.id)
        .limit(limit)
    )
    return list(session.exec(statement).all())


def list_unreconciled(*, session: Session, limit: int = 100) -> list[Payment]:
    """查询已支付成功但订单仍是 PENDING 的支付（标记订单已支付失败后遗留）"""
    statement = (
        select(Payment)
        .join(Order, Order.id == Payment.order_id)
        .where(
            Payment.status == PaymentStatus.SUCCESS.value,
            Order.status == OrderStatus.PENDING.value,
        )
        .order_by(Payment.id)
        .limit(limit)
    )
    return list(session.exec(statement).all())

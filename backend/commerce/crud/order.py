"""
订单 CRUD 操作

transition_status 是条件更新（compare-and-set）：只有当前状态仍为 from_status 时才写入，
并发场景下后到的请求不会覆盖先到的结果。
写操作均不提交事务，由调用方决定提交或回滚。
"""
from sqlalchemy import update
from sqlmodel import Session, func, select

from commerce.enums import OrderStatus
from commerce.models import Order, OrderItem, utc_now


def get_order(*, session: Session, order_id: int) -> Order | None:
    """根据 ID 查询订单（明细随之加载）"""
    return session.get(Order, order_id)


def add_order(*, session: Session, order: Order, items: list[OrderItem]) -> Order:
    """写入订单及明细（flush，不提交）"""
    order.items = items
    session.add(order)
    session.flush()
    return order


def list_orders(
    *,
    session: Session,
    offset: int,
    limit: int,
    user_id: int | None = None,
    status: OrderStatus | None = None,
) -> tuple[list[Order], int]:
    """分页查询订单，按创建时间倒序；user_id 为空时查询全部"""
    conditions = []
    if user_id is not None:
        conditions.append(Order.user_id == user_id)
    if status is not None:
        conditions.append(Order.status == status.value)

    count = session.exec(
        select(func.count()).select_from(Order).where(*conditions)
    ).one()
    rows = session.exec(
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
    ).all()
    return list(rows), count


def transition_status(
    *,
    session: Session,
    order_id: int,
    from_status: OrderStatus,
    to_status: OrderStatus,
) -> bool:
    """
    条件更新订单状态

    UPDATE orders SET status = :to WHERE id = :id AND status = :from

    Returns:
        True 表示命中并更新；False 表示订单不存在或状态已不是 from_status
    """
    stmt = (
        update(Order)
        .where(Order.id == order_id, Order.status == from_status.value)
        .values(status=to_status.value, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1

"""
订单流程服务

负责订单生命周期：
- checkout: 扣减库存 + 创建订单，一个事务内完成
- update_status / cancel_order: 状态机流转；取消时归还库存
- mark_as_paid: 供支付模块在支付成功后调用

支付模块只通过 OrderPaymentPort（get_order / mark_as_paid）访问订单，
本模块不依赖任何支付代码。
"""
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from sqlmodel import Session

from commerce import crud
from commerce.api.errors import (
    EmptyCart,
    InsufficientStock,
    InvalidOrderStatus,
    InvalidQuantity,
    InvalidStatusTransition,
    OrderNotCancellable,
    OrderNotFound,
    ProductNotFound,
    Unauthorized,
)
from commerce.enums import OrderStatus
from commerce.models import Order, OrderItem, can_transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartItem:
    """结算请求中的一行：商品 + 数量"""

    product_id: int
    quantity: int


def parse_order_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidOrderStatus() from None


class OrderPaymentPort(ABC):
    """支付模块依赖的订单能力"""

    @abstractmethod
    def get_order(
        self, *, session: Session, order_id: int, user_id: int, is_admin: bool = False
    ) -> Order:
        """按 ID 读取订单，并校验归属"""
        ...

    @abstractmethod
    def mark_as_paid(self, *, session: Session, order_id: int) -> Order:
        """将 PENDING 订单标记为 PAID（独立提交）"""
        ...


class OrderService(OrderPaymentPort):
    """订单服务"""

    def checkout(
        self,
        *,
        session: Session,
        user_id: int,
        items: Sequence[CartItem],
        shipping_address: str,
        notes: str | None = None,
    ) -> Order:
        """
        结算：按请求顺序逐个扣减库存，然后写入订单与明细

        任何一步失败（商品不存在、库存不足、数据库异常）都会回滚整个事务，
        已扣减的库存随之恢复，不会留下订单。

        Raises:
            EmptyCart: items 为空
            InvalidQuantity: 某一行数量 <= 0
            ProductNotFound: 商品不存在
            InsufficientStock: 库存不足
        """
        if not items:
            raise EmptyCart()
        if any(item.quantity <= 0 for item in items):
            raise InvalidQuantity()

        try:
            order_items: list[OrderItem] = []
            total = Decimal("0.00")
            for item in items:
                product = crud.get_product(session=session, product_id=item.product_id)
                if product is None:
                    raise ProductNotFound(message=f"Product {item.product_id} not found")
                if not crud.reduce_stock(
                    session=session, product_id=product.id, quantity=item.quantity
                ):
                    raise InsufficientStock(
                        message=f"Insufficient stock for product {product.id}"
                    )
                subtotal = product.price * item.quantity
                order_items.append(
                    OrderItem(
                        product_id=product.id,
                        quantity=item.quantity,
                        price=product.price,
                        subtotal=subtotal,
                    )
                )
                total += subtotal

            order = Order(
                user_id=user_id,
                total_amount=total,
                status=OrderStatus.PENDING,
                shipping_address=shipping_address,
                notes=notes,
            )
            crud.add_order(session=session, order=order, items=order_items)
            session.commit()
        except Exception:
            session.rollback()
            raise

        session.refresh(order)
        logger.info(
            "Order checked out: order_id=%s user_id=%s items=%d total=%s",
            order.id,
            user_id,
            len(order_items),
            total,
        )
        return order

    def get_order(
        self, *, session: Session, order_id: int, user_id: int, is_admin: bool = False
    ) -> Order:
        order = crud.get_order(session=session, order_id=order_id)
        if order is None:
            raise OrderNotFound()
        if not is_admin and order.user_id != user_id:
            raise Unauthorized()
        return order

    def list_orders(
        self,
        *,
        session: Session,
        page: int,
        page_size: int,
        user_id: int | None = None,
        status: str | None = None,
    ) -> tuple[list[Order], int]:
        """分页查询订单；user_id 为空表示管理员查询全部"""
        parsed = parse_order_status(status) if status else None
        return crud.list_orders(
            session=session,
            offset=(page - 1) * page_size,
            limit=page_size,
            user_id=user_id,
            status=parsed,
        )

    def update_status(
        self,
        *,
        session: Session,
        order_id: int,
        user_id: int,
        status: str,
        is_admin: bool = False,
    ) -> Order:
        """
        推进订单状态

        普通用户只能把自己的订单改为 CANCELLED；其余流转需要管理员。
        CANCELLED 统一走 cancel_order，保证库存被归还。
        """
        target = parse_order_status(status)
        order = self.get_order(
            session=session, order_id=order_id, user_id=user_id, is_admin=is_admin
        )
        if not is_admin and target != OrderStatus.CANCELLED:
            raise Unauthorized(message="Only admins can move orders past PENDING")

        current = OrderStatus(order.status)
        if not can_transition(current, target):
            raise InvalidStatusTransition(
                message=f"Cannot transition order from {current.value} to {target.value}"
            )
        if target == OrderStatus.CANCELLED:
            return self.cancel_order(
                session=session, order_id=order_id, user_id=user_id, is_admin=is_admin
            )
        self._transition(session=session, order_id=order_id, current=current, target=target)
        session.refresh(order)
        logger.info(
            "Order status updated: order_id=%s %s -> %s", order_id, current.value, target.value
        )
        return order

    def cancel_order(
        self,
        *,
        session: Session,
        order_id: int,
        user_id: int,
        is_admin: bool = False,
    ) -> Order:
        """
        取消订单：归还每一行的库存，再把状态从 PENDING 改为 CANCELLED

        归还与状态更新在同一事务中；状态条件更新未命中（订单已被支付等）时整体回滚，
        库存不会被重复归还。
        """
        order = self.get_order(
            session=session, order_id=order_id, user_id=user_id, is_admin=is_admin
        )
        if order.status != OrderStatus.PENDING:
            raise OrderNotCancellable()

        try:
            for item in order.items:
                if not crud.restore_stock(
                    session=session, product_id=item.product_id, quantity=item.quantity
                ):
                    raise ProductNotFound(message=f"Product {item.product_id} not found")
            if not crud.transition_status(
                session=session,
                order_id=order_id,
                from_status=OrderStatus.PENDING,
                to_status=OrderStatus.CANCELLED,
            ):
                raise OrderNotCancellable()
            session.commit()
        except Exception:
            session.rollback()
            raise

        session.refresh(order)
        logger.info("Order cancelled: order_id=%s items=%d", order_id, len(order.items))
        return order

    def mark_as_paid(self, *, session: Session, order_id: int) -> Order:
        """
        PENDING -> PAID

        在执行时重新校验 PENDING：订单可能已在支付期间被取消。
        """
        order = crud.get_order(session=session, order_id=order_id)
        if order is None:
            raise OrderNotFound()
        self._transition(
            session=session,
            order_id=order_id,
            current=OrderStatus.PENDING,
            target=OrderStatus.PAID,
        )
        session.refresh(order)
        logger.info("Order marked as paid: order_id=%s", order_id)
        return order

    def _transition(
        self,
        *,
        session: Session,
        order_id: int,
        current: OrderStatus,
        target: OrderStatus,
    ) -> None:
        try:
            if not crud.transition_status(
                session=session, order_id=order_id, from_status=current, to_status=target
            ):
                raise InvalidStatusTransition(
                    message=f"Order is no longer {current.value}"
                )
            session.commit()
        except Exception:
            session.rollback()
            raise


_order_service: OrderService | None = None


def get_order_service() -> OrderService:
    """获取全局订单服务实例"""
    global _order_service
    if _order_service is None:
        _order_service = OrderService()
    return _order_service

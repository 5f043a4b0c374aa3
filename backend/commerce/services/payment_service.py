"""
支付结算服务

支付生命周期：
1. create_payment: 校验后写入 PENDING 支付，把结算任务投递到 Redis Stream 后立即返回
2. settle（结算 worker）: 认领 PENDING -> PROCESSING，等待网关延迟，确认仍持有认领后扣款，写入终态
3. process_callback: 网关回调直接写入终态

结算任务与回调可能同时到达，终态写入是条件更新（仅当支付仍为 PENDING / PROCESSING），
只有一方成功，另一方收到 PaymentAlreadyProcessed。

支付成功与订单标记已支付是两次独立提交：后者失败时只记录日志，
支付保持 SUCCESS，由 reconcile 恢复任务补做。
"""
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from functools import partial

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from commerce import crud
from commerce.api.errors import (
    AppError,
    InvalidPaymentMethod,
    InvalidPaymentStatus,
    InvalidStatusTransition,
    OrderNotFound,
    OrderNotPending,
    PaymentAlreadyExists,
    PaymentAlreadyProcessed,
    PaymentNotFound,
    Unauthorized,
)
from commerce.core.settlement_queue import SettlementQueue
from commerce.enums import PAYMENT_OPEN_STATUSES, OrderStatus, PaymentMethod, PaymentStatus
from commerce.integrations.payment_gateway import PaymentGateway, generate_transaction_id
from commerce.models import Payment, utc_now
from commerce.services.order_service import OrderPaymentPort

logger = logging.getLogger(__name__)

# 交易号撞上已有支付时重新生成的次数上限
_TRANSACTION_ID_ATTEMPTS = 2


@dataclass(frozen=True)
class ReconcileReport:
    """一次恢复任务的结果"""

    resumed: int  # 重新派发结算的支付数
    repaired: int  # 补做 mark_as_paid 成功的订单数


class PaymentService:
    """支付服务"""

    def __init__(
        self,
        *,
        orders: OrderPaymentPort,
        gateway: PaymentGateway,
        queue: SettlementQueue,
        session_factory: Callable[[], Session],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.orders = orders
        self.gateway = gateway
        self.queue = queue
        self.session_factory = session_factory
        self._sleep = sleep

    # ------------------------------------------------------------
    # 创建
    # ------------------------------------------------------------

    def create_payment(
        self, *, session: Session, user_id: int, order_id: int, method: str
    ) -> Payment:
        """
        为订单创建支付

        校验顺序：支付方式 -> 是否已有有效支付 -> 订单存在且属于当前用户 -> 订单为 PENDING。
        金额取订单总额。写入成功后把结算任务投递到结算队列，不等待结果。
        交易号与已有支付冲突时重新生成一次。
        """
        try:
            payment_method = PaymentMethod(method)
        except ValueError:
            raise InvalidPaymentMethod() from None

        if crud.get_active_for_order(session=session, order_id=order_id) is not None:
            raise PaymentAlreadyExists()

        try:
            order = self.orders.get_order(session=session, order_id=order_id, user_id=user_id)
        except Unauthorized:
            raise OrderNotFound() from None
        if order.status != OrderStatus.PENDING:
            raise OrderNotPending()

        amount = order.total_amount
        for attempt in range(1, _TRANSACTION_ID_ATTEMPTS + 1):
            payment = Payment(
                order_id=order_id,
                user_id=user_id,
                amount=amount,
                method=payment_method,
                status=PaymentStatus.PENDING,
                transaction_id=generate_transaction_id(),
            )
            try:
                crud.add_payment(session=session, payment=payment)
                session.commit()
                break
            except IntegrityError:
                session.rollback()
                collided = crud.get_by_transaction_id(
                    session=session, transaction_id=payment.transaction_id
                )
                if collided is None:
                    # 并发创建：部分唯一索引拦截了第二笔有效支付
                    raise PaymentAlreadyExists() from None
                if attempt == _TRANSACTION_ID_ATTEMPTS:
                    raise
                logger.warning(
                    "Transaction id %s already taken, regenerating.", payment.transaction_id
                )
            except Exception:
                session.rollback()
                raise

        session.refresh(payment)
        logger.info(
            "Payment created: payment_id=%s order_id=%s amount=%s method=%s txn=%s",
            payment.id,
            order_id,
            payment.amount,
            payment_method.value,
            payment.transaction_id,
        )
        self.queue.enqueue(payment.id)
        return payment

    # ------------------------------------------------------------
    # 结算
    # ------------------------------------------------------------

    def settle(self, payment_id: int, resume: bool = False) -> PaymentStatus | None:
        """
        结算任务（由结算 worker 消费队列消息后调用）

        网关延迟期间不持有数据库会话与事务。
        resume=True 用于恢复任务：允许从 PROCESSING 接手。
        每次认领都会递增 settlement_attempts，扣款前确认自己仍持有最新一次认领，
        被接手的原结算者放弃扣款。

        Returns:
            本次写入的终态；支付已被其他写入方处理时返回 None
        """
        from_statuses = PAYMENT_OPEN_STATUSES if resume else (PaymentStatus.PENDING,)
        with self.session_factory() as session:
            payment = crud.get_payment(session=session, payment_id=payment_id)
            if payment is None or payment.status not in from_statuses:
                logger.info("Payment %s is not open for settlement, skip.", payment_id)
                return None
            attempt = payment.settlement_attempts
            if not crud.mark_processing(
                session=session,
                payment_id=payment_id,
                attempt=attempt,
                from_statuses=from_statuses,
            ):
                session.rollback()
                logger.info("Payment %s was claimed by another settlement, skip.", payment_id)
                return None
            session.commit()
            attempt += 1
            transaction_id = payment.transaction_id
            amount = payment.amount
            method = payment.method

        delay = self.gateway.latency()
        logger.info(
            "Settling payment %s (txn=%s attempt=%s) after %ss",
            payment_id,
            transaction_id,
            attempt,
            delay,
        )
        self._sleep(delay)

        with self.session_factory() as session:
            if not crud.holds_claim(session=session, payment_id=payment_id, attempt=attempt):
                logger.info(
                    "Payment %s attempt %s was superseded, skip charging.", payment_id, attempt
                )
                return None

        result = self.gateway.charge(transaction_id=transaction_id, amount=amount, method=method)
        status = PaymentStatus.SUCCESS if result.success else PaymentStatus.FAILED

        with self.session_factory() as session:
            try:
                self._resolve(
                    session=session,
                    payment_id=payment_id,
                    status=status,
                    failed_reason=result.failure_reason,
                )
            except PaymentAlreadyProcessed:
                logger.info(
                    "Payment %s was resolved by another writer, drop settlement result %s",
                    payment_id,
                    status.value,
                )
                return None
        return status

    def process_callback(
        self,
        *,
        session: Session,
        transaction_id: str,
        status: PaymentStatus,
        failed_reason: str | None = None,
    ) -> Payment:
        """网关回调：按交易号定位支付并写入终态"""
        payment = crud.get_by_transaction_id(session=session, transaction_id=transaction_id)
        if payment is None:
            raise PaymentNotFound()
        if payment.status not in PAYMENT_OPEN_STATUSES:
            raise PaymentAlreadyProcessed()
        return self._resolve(
            session=session,
            payment_id=payment.id,
            status=status,
            failed_reason=failed_reason,
        )

    def _resolve(
        self,
        *,
        session: Session,
        payment_id: int,
        status: PaymentStatus,
        failed_reason: str | None,
    ) -> Payment:
        """写入终态；SUCCESS 时再单独提交订单已支付"""
        try:
            if not crud.resolve_payment(
                session=session,
                payment_id=payment_id,
                status=status,
                failed_reason=failed_reason,
            ):
                raise PaymentAlreadyProcessed()
            session.commit()
        except Exception:
            session.rollback()
            raise

        payment = crud.get_payment(session=session, payment_id=payment_id)
        if payment is None:  # pragma: no cover
            raise PaymentNotFound()
        logger.info(
            "Payment resolved: payment_id=%s order_id=%s status=%s reason=%s",
            payment_id,
            payment.order_id,
            status.value,
            failed_reason,
        )
        if status == PaymentStatus.SUCCESS:
            self._mark_order_paid(session=session, order_id=payment.order_id, payment_id=payment_id)
        return payment

    def _mark_order_paid(self, *, session: Session, order_id: int, payment_id: int) -> bool:
        """调用订单模块标记已支付，失败只记录日志"""
        try:
            self.orders.mark_as_paid(session=session, order_id=order_id)
        except InvalidStatusTransition:
            logger.warning(
                "Payment %s succeeded but order %s is no longer PENDING; manual refund needed.",
                payment_id,
                order_id,
            )
            return False
        except (AppError, SQLAlchemyError) as exc:
            logger.error(
                "Failed to mark order %s as paid for payment %s: %s", order_id, payment_id, exc
            )
            return False
        return True

    # ------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------

    def get_payment(
        self, *, session: Session, payment_id: int, user_id: int, is_admin: bool = False
    ) -> Payment:
        payment = crud.get_payment(session=session, payment_id=payment_id)
        if payment is None:
            raise PaymentNotFound()
        if not is_admin and payment.user_id != user_id:
            raise Unauthorized()
        return payment

    def get_payment_by_order(
        self, *, session: Session, order_id: int, user_id: int, is_admin: bool = False
    ) -> Payment:
        """订单最近一笔支付；订单归属通过订单模块校验"""
        self.orders.get_order(
            session=session, order_id=order_id, user_id=user_id, is_admin=is_admin
        )
        payment = crud.get_latest_for_order(session=session, order_id=order_id)
        if payment is None:
            raise PaymentNotFound()
        return payment

    def list_payments(
        self,
        *,
        session: Session,
        page: int,
        page_size: int,
        user_id: int | None = None,
        status: str | None = None,
        order_id: int | None = None,
    ) -> tuple[list[Payment], int]:
        """分页查询支付；user_id 为空表示管理员查询全部"""
        parsed: PaymentStatus | None = None
        if status:
            try:
                parsed = PaymentStatus(status)
            except ValueError:
                raise InvalidPaymentStatus() from None
        return crud.list_payments(
            session=session,
            offset=(page - 1) * page_size,
            limit=page_size,
            user_id=user_id,
            status=parsed,
            order_id=order_id,
        )

    # ------------------------------------------------------------
    # 恢复
    # ------------------------------------------------------------

    def reconcile(self, *, stale_after_seconds: int, batch_size: int = 100) -> ReconcileReport:
        """
        恢复任务

        - 卡在 PENDING / PROCESSING 超过 stale_after_seconds 的支付：重新投递结算任务（resume=True）
        - SUCCESS 但订单仍为 PENDING 的支付：补做 mark_as_paid
        """
        cutoff = utc_now() - timedelta(seconds=stale_after_seconds)
        with self.session_factory() as session:
            stale_ids = [
                p.id for p in crud.list_stale(session=session, before=cutoff, limit=batch_size)
            ]
            unreconciled = [
                (p.id, p.order_id)
                for p in crud.list_unreconciled(session=session, limit=batch_size)
            ]

        for payment_id in stale_ids:
            logger.info("Resuming stale payment %s", payment_id)
            self.queue.enqueue(payment_id, resume=True)

        repaired = 0
        for payment_id, order_id in unreconciled:
            with self.session_factory() as session:
                if self._mark_order_paid(session=session, order_id=order_id, payment_id=payment_id):
                    repaired += 1

        return ReconcileReport(resumed=len(stale_ids), repaired=repaired)


_payment_service: PaymentService | None = None


def get_payment_service() -> PaymentService:
    """获取全局支付服务实例（按配置装配模拟网关与结算队列）"""
    global _payment_service
    if _payment_service is None:
        from commerce.core.db import engine
        from commerce.core.redis_client import get_redis_client
        from commerce.integrations.payment_gateway import get_payment_gateway
        from commerce.services.order_service import get_order_service

        _payment_service = PaymentService(
            orders=get_order_service(),
            gateway=get_payment_gateway(),
            queue=SettlementQueue(get_redis_client()),
            session_factory=partial(Session, engine),
        )
    return _payment_service

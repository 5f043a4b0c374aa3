"""
定时任务逻辑
"""

import logging
from uuid import uuid4

from commerce.core.config import settings
from commerce.core.redis_client import get_redis_client
from commerce.services.payment_service import ReconcileReport, get_payment_service

logger = logging.getLogger(__name__)

RECONCILE_LOCK_KEY = "payments:reconcile:lock"


def reconcile_payments() -> ReconcileReport | None:
    """
    支付恢复任务

    - 重新派发卡在 PENDING / PROCESSING 的结算
    - 为已支付成功但订单仍为 PENDING 的支付补做标记

    多实例部署时通过 Redis 锁保证同一时刻只有一个实例执行。
    """
    redis_client = get_redis_client()
    lock_value = str(uuid4())
    acquired = redis_client.acquire_lock(
        RECONCILE_LOCK_KEY,
        lock_value,
        expire_seconds=max(settings.PAYMENT_RECONCILE_INTERVAL_SECONDS, 30),
    )
    if not acquired:
        logger.info("Payment reconcile task already running, skip this run.")
        return None

    try:
        report = get_payment_service().reconcile(
            stale_after_seconds=settings.PAYMENT_STALE_AFTER_SECONDS,
            batch_size=settings.PAYMENT_RECONCILE_BATCH_SIZE,
        )
        logger.info(
            "Payment reconcile finished: resumed=%d repaired=%d",
            report.resumed,
            report.repaired,
        )
        return report
    finally:
        redis_client.release_lock(RECONCILE_LOCK_KEY, lock_value)

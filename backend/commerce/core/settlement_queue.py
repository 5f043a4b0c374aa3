"""
结算任务队列（Redis Streams）

API 创建支付后把 payment_id 投递到 payments:settlement:{ENVIRONMENT}，
结算 worker 以消费者组读取、执行结算，完成后 xack。
投递失败时支付保持 PENDING，由恢复任务在超时后重新投递。
"""
import logging

from commerce.core.config import settings
from commerce.core.redis_client import RedisClient

logger = logging.getLogger(__name__)

SETTLEMENT_GROUP = "payment_settlers"


def settlement_stream_key() -> str:
    """按环境区分 stream key"""
    return f"payments:settlement:{settings.ENVIRONMENT}"


class SettlementQueue:
    """结算任务投递端"""

    def __init__(
        self,
        redis_client: RedisClient,
        stream_key: str | None = None,
        maxlen: int | None = None,
    ) -> None:
        self.redis_client = redis_client
        self.stream_key = stream_key or settlement_stream_key()
        self.maxlen = maxlen if maxlen is not None else settings.PAYMENT_STREAM_MAXLEN

    def enqueue(self, payment_id: int, resume: bool = False) -> str | None:
        """
        投递一笔结算任务

        Args:
            payment_id: 支付 ID
            resume: 恢复任务重新投递时为 True，允许从 PROCESSING 接手

        Returns:
            消息 ID；Redis 不可用时返回 None
        """
        message_id = self.redis_client.xadd(
            self.stream_key,
            {"payment_id": str(payment_id), "resume": "1" if resume else "0"},
            maxlen=self.maxlen,
        )
        if message_id is None:
            logger.warning(
                "Failed to enqueue settlement for payment %s, reconcile will retry it.",
                payment_id,
            )
        return message_id

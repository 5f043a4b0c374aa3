"""
支付结算 worker

从 payments:settlement:{ENVIRONMENT} 以消费者组读取 payment_id，执行结算后 xack。
结算抛异常时不 xack，消息留在 pending 列表，空闲超时后由任一消费者 xautoclaim 接手。

运行方式：
    python -m commerce.worker.settlement_worker
"""

from __future__ import annotations

import logging
import os
import socket
import time

from commerce.core.config import settings
from commerce.core.redis_client import RedisClient, get_redis_client
from commerce.core.settlement_queue import SETTLEMENT_GROUP, settlement_stream_key
from commerce.enums import PaymentStatus
from commerce.services.payment_service import PaymentService, get_payment_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("settlement_worker")


def consumer_name() -> str:
    """消费者名，未配置时按主机名和进程号生成"""
    return settings.PAYMENT_WORKER_CONSUMER or f"settlement-{socket.gethostname()}-{os.getpid()}"


def handle_message(service: PaymentService, fields: dict[str, str]) -> PaymentStatus | None:
    payment_id = int(fields["payment_id"])
    resume = fields.get("resume") == "1"
    return service.settle(payment_id, resume=resume)


def read_batch(
    redis_client: RedisClient, stream_key: str, consumer: str
) -> list[tuple[str, dict[str, str]]]:
    """读取新消息；没有新消息时认领其他消费者遗留的 pending 消息"""
    resp = redis_client.xreadgroup(
        SETTLEMENT_GROUP,
        consumer,
        {stream_key: ">"},
        count=settings.PAYMENT_STREAM_BATCH_SIZE,
        block=settings.PAYMENT_STREAM_BLOCK_MS,
    )
    messages: list[tuple[str, dict[str, str]]] = []
    for _stream, batch in resp:
        messages.extend(batch)
    if messages:
        return messages

    return redis_client.xautoclaim(
        stream_key,
        SETTLEMENT_GROUP,
        consumer,
        min_idle_time=settings.PAYMENT_STREAM_CLAIM_IDLE_MS,
        count=settings.PAYMENT_STREAM_BATCH_SIZE,
    )


def process_batch(
    redis_client: RedisClient,
    service: PaymentService,
    stream_key: str,
    messages: list[tuple[str, dict[str, str]]],
) -> int:
    """逐条结算，返回 xack 的消息数"""
    acked = 0
    for msg_id, fields in messages:
        try:
            handle_message(service, fields)
        except Exception as e:
            logger.exception("failed processing message %s: %s", msg_id, e)
            continue
        acked += redis_client.xack(stream_key, SETTLEMENT_GROUP, msg_id)
    return acked


def run_once(
    redis_client: RedisClient,
    service: PaymentService,
    stream_key: str,
    consumer: str,
) -> int:
    messages = read_batch(redis_client, stream_key, consumer)
    if not messages:
        return 0
    return process_batch(redis_client, service, stream_key, messages)


def main() -> None:
    redis_client = get_redis_client()
    service = get_payment_service()
    stream_key = settlement_stream_key()
    consumer = consumer_name()

    if not redis_client.xgroup_create(stream_key, SETTLEMENT_GROUP, "0", mkstream=True):
        raise RuntimeError(f"Cannot create consumer group {SETTLEMENT_GROUP} on {stream_key}")

    logger.info(
        "settlement worker started: stream=%s group=%s consumer=%s",
        stream_key,
        SETTLEMENT_GROUP,
        consumer,
    )

    while True:
        try:
            run_once(redis_client, service, stream_key, consumer)
        except Exception as e:
            logger.exception("worker loop error: %s", e)
            time.sleep(1)


if __name__ == "__main__":  # pragma: no cover
    main()

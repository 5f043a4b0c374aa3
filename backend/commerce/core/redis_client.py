"""
Redis 客户端

用途：
- 分布式锁：多个 worker 实例同时运行支付恢复任务时，保证同一时刻只有一个实例在扫描
- Redis Streams：结算任务队列，API 投递、结算 worker 以消费者组消费
"""

import logging

import redis

logger = logging.getLogger(__name__)

# 仅当锁值匹配时才删除，避免误删其他实例续上的锁
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisClient:
    """Redis 客户端封装"""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
    ):
        self.client = redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=True,
        )
        logger.info("Redis client initialized: %s:%s/%s", host, port, db)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error("Redis ping failed: %s", e)
            return False

    def acquire_lock(
        self,
        lock_key: str,
        lock_value: str,
        expire_seconds: int = 60,
    ) -> bool:
        """
        获取分布式锁（SET NX EX）

        Args:
            lock_key: 锁键
            lock_value: 锁值（释放时校验）
            expire_seconds: 锁过期时间（秒）

        Returns:
            是否获取成功；Redis 不可用时视为未获取
        """
        try:
            return bool(self.client.set(lock_key, lock_value, ex=expire_seconds, nx=True))
        except redis.RedisError as e:
            logger.error("Failed to acquire lock %s: %s", lock_key, e)
            return False

    def release_lock(self, lock_key: str, lock_value: str) -> bool:
        """释放分布式锁（Lua 脚本保证比较与删除的原子性）"""
        try:
            result = self.client.eval(_RELEASE_LOCK_SCRIPT, 1, lock_key, lock_value)
            return result == 1
        except redis.RedisError as e:
            logger.error("Failed to release lock %s: %s", lock_key, e)
            return False

    # ========================================================================
    # Redis Streams（结算任务队列）
    # ========================================================================

    def xadd(
        self,
        stream_key: str,
        fields: dict[str, str],
        message_id: str = "*",
        maxlen: int | None = None,
    ) -> str | None:
        """
        添加消息到 Stream

        Args:
            stream_key: Stream 键
            fields: 消息字段
            message_id: 消息 ID，默认 "*" 自动生成
            maxlen: 近似最大长度，超过则裁剪最旧的消息

        Returns:
            消息 ID；Redis 不可用时返回 None
        """
        try:
            return self.client.xadd(
                stream_key, fields, id=message_id, maxlen=maxlen, approximate=True
            )
        except redis.RedisError as e:
            logger.error("Redis xadd to %s failed: %s", stream_key, e)
            return None

    def xgroup_create(
        self,
        stream_key: str,
        group_name: str,
        message_id: str = "0",
        mkstream: bool = True,
    ) -> bool:
        """创建消费者组，组已存在（BUSYGROUP）视为成功"""
        try:
            self.client.xgroup_create(stream_key, group_name, id=message_id, mkstream=mkstream)
            return True
        except redis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                return True
            logger.error("Redis xgroup_create %s/%s failed: %s", stream_key, group_name, e)
            return False
        except redis.RedisError as e:
            logger.error("Redis xgroup_create %s/%s failed: %s", stream_key, group_name, e)
            return False

    def xreadgroup(
        self,
        group_name: str,
        consumer_name: str,
        streams: dict[str, str],
        count: int | None = None,
        block: int | None = None,
    ) -> list[tuple[str, list[tuple[str, dict[str, str]]]]]:
        """
        从消费者组读取消息

        Args:
            group_name: 消费者组名
            consumer_name: 消费者名
            streams: Stream 键和起始 ID 的字典（">" 表示只读新消息）
            count: 最多读取的消息数
            block: 阻塞时间（毫秒）

        Returns:
            [(stream, [(message_id, fields), ...]), ...]
        """
        try:
            return self.client.xreadgroup(
                group_name, consumer_name, streams, count=count, block=block
            ) or []
        except redis.RedisError as e:
            logger.error("Redis xreadgroup failed: %s", e)
            return []

    def xautoclaim(
        self,
        stream_key: str,
        group_name: str,
        consumer_name: str,
        min_idle_time: int,
        count: int = 10,
    ) -> list[tuple[str, dict[str, str]]]:
        """
        认领空闲超过 min_idle_time（毫秒）的未确认消息（Redis 6.2+）

        消费者崩溃后，它读到但没有 xack 的消息由其他消费者接手。
        """
        try:
            result = self.client.xautoclaim(
                stream_key,
                group_name,
                consumer_name,
                min_idle_time=min_idle_time,
                start_id="0-0",
                count=count,
            )
        except redis.RedisError as e:
            logger.error("Redis xautoclaim failed: %s", e)
            return []
        # Redis 7 返回 [next_id, messages, deleted_ids]，6.2 没有第三项
        return list(result[1]) if result else []

    def xack(self, stream_key: str, group_name: str, *message_ids: str) -> int:
        """确认消息已处理，返回确认的消息数"""
        try:
            return self.client.xack(stream_key, group_name, *message_ids)
        except redis.RedisError as e:
            logger.error("Redis xack failed: %s", e)
            return 0


_redis_client: RedisClient | None = None


def init_redis_client(
    host: str = "localhost",
    port: int = 6379,
    db: int = 0,
    password: str | None = None,
) -> RedisClient:
    """初始化全局 Redis 客户端"""
    global _redis_client
    _redis_client = RedisClient(host=host, port=port, db=db, password=password)
    return _redis_client


def get_redis_client() -> RedisClient:
    """获取全局 Redis 客户端，未初始化时按配置创建"""
    if _redis_client is not None:
        return _redis_client

    from commerce.core.config import settings

    return init_redis_client(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD,
    )

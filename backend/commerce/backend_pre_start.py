"""
应用启动前检查脚本

在 API / worker 启动前等待 PostgreSQL 与 Redis 就绪。
Docker Compose 启动时数据库容器可能还在初始化，这里通过重试避免启动失败。
"""
import logging

from sqlalchemy import Engine
from sqlmodel import Session, select
from tenacity import after_log, before_log, retry, stop_after_attempt, wait_fixed

from commerce.core.db import engine
from commerce.core.redis_client import RedisClient, get_redis_client

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

max_tries = 60 * 5  # 最多等待 5 分钟
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(db_engine: Engine) -> None:
    """执行 select(1)，失败时由 tenacity 重试"""
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
    except Exception as e:
        logger.error(e)
        raise e


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def wait_for_redis(client: RedisClient) -> None:
    if not client.ping():
        raise RuntimeError("Redis is not ready")


def main() -> None:
    logger.info("Initializing service")
    init(engine)
    wait_for_redis(get_redis_client())
    logger.info("Service finished initializing")


if __name__ == "__main__":  # pragma: no cover
    main()

"""
数据库连接模块

管理数据库引擎的创建与初始数据。

重要提示：
- 表结构通过 Alembic 迁移管理，不要在这里 create_all
- 使用前确保已导入 commerce.models，否则关系可能无法正确初始化
"""
import logging

from sqlmodel import Session, create_engine

from commerce import crud
from commerce.core.config import settings
from commerce.enums import UserRole

logger = logging.getLogger(__name__)

# pool_pre_ping：结算线程长时间持有连接池，避免拿到已断开的连接
engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI), pool_pre_ping=True)


def init_db(session: Session) -> None:
    """
    写入初始数据

    如果配置了 FIRST_ADMIN_EMAIL，确保该管理员账号存在。
    """
    if not settings.FIRST_ADMIN_EMAIL:
        logger.info("FIRST_ADMIN_EMAIL not configured, skip admin seeding.")
        return
    user = crud.get_or_create_user_by_email(
        session=session, email=settings.FIRST_ADMIN_EMAIL, role=UserRole.admin
    )
    logger.info("Admin user ready: id=%s email=%s", user.id, user.email)

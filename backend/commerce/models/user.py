"""
用户模型模块

用户由外部身份系统签发 token，本服务只保存 ID 与角色。
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

from commerce.enums import UserRole

from .base import utc_now


class User(SQLModel, table=True):
    """
    用户模型

    字段说明：
    - id: 主键（自增）
    - email: 邮箱（唯一）
    - role: 角色（admin / seller / user）
    - created_at: 创建时间
    """
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(
        max_length=255,
        sa_column=Column(String(255), unique=True, index=True, nullable=False),
    )
    role: UserRole = Field(
        default=UserRole.user, sa_column=Column(String(16), nullable=False)
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

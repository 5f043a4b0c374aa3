"""
模型公共工具

- utc_now: 时间字段默认值（带时区的 UTC 时间）
- money_column: 金额列，统一为 NUMERIC(12, 2)，读写均为 Decimal
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Numeric
from sqlmodel import SQLModel

MONEY_PRECISION = 12
MONEY_SCALE = 2


def utc_now() -> datetime:
    """当前 UTC 时间"""
    return datetime.now(timezone.utc)


def money_column() -> Column:
    """
    金额列

    每个字段需要独立的 Column 实例，因此用函数而不是模块级常量。
    """
    return Column(Numeric(MONEY_PRECISION, MONEY_SCALE), nullable=False)


__all__ = ["SQLModel", "money_column", "utc_now"]

"""
JWT 工具

本服务不负责登录，token 由身份系统签发；
create_access_token 供运维脚本和测试生成 token 使用。
"""
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from commerce.core.config import settings

ALGORITHM = "HS256"


def create_access_token(subject: str | Any, expires_delta: timedelta) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject)}
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt

"""
FastAPI 依赖注入模块

提供路由共用的依赖项：
- 数据库会话
- 当前用户（Bearer JWT，sub 为用户 ID）以及管理员校验
- 订单 / 支付服务（测试中通过 app.dependency_overrides 替换）
"""
from collections.abc import Generator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session

from commerce.api.errors import Forbidden
from commerce.api.schemas import TokenPayload
from commerce.core import security
from commerce.core.config import settings
from commerce.core.db import engine
from commerce.enums import UserRole
from commerce.models import User
from commerce.services.order_service import OrderService, get_order_service
from commerce.services.payment_service import PaymentService, get_payment_service

reusable_oauth2 = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    """每个请求一个会话，请求结束后自动关闭"""
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials, Depends(reusable_oauth2)]


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )


def get_current_user(session: SessionDep, token: TokenDep) -> User:
    """
    解析 JWT 并加载当前用户

    Raises:
        HTTPException(401): token 无效、sub 缺失或用户不存在
    """
    try:
        payload = jwt.decode(
            token.credentials, settings.SECRET_KEY, algorithms=[security.ALGORITHM]
        )
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        raise _credentials_error()
    if not token_data.sub:
        raise _credentials_error()
    try:
        user_id = int(token_data.sub)
    except ValueError:
        raise _credentials_error()
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def is_admin(user: User) -> bool:
    return user.role == UserRole.admin


def get_current_admin(current_user: CurrentUser) -> User:
    """仅管理员可访问"""
    if not is_admin(current_user):
        raise Forbidden(message="Admin role required")
    return current_user


AdminUser = Annotated[User, Depends(get_current_admin)]

OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]

"""
工具路由模块

提供健康检查等系统端点。
"""
from fastapi import APIRouter
from sqlmodel import select

from commerce.api.deps import SessionDep

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
def health_check(session: SessionDep) -> bool:
    """
    健康检查：能执行 select(1) 即视为服务正常

    请求路径: GET /api/v1/utils/health-check/
    """
    session.exec(select(1))
    return True

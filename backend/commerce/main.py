"""
FastAPI 应用主入口

负责：
1. 创建 FastAPI 应用实例
2. 初始化 Sentry（非本地环境）
3. 注册全局异常处理器，统一渲染 {"code", "message", "data"} 响应
4. 注册 API 路由

运行方式：
    fastapi dev commerce/main.py
"""
import logging
from typing import Any

import sentry_sdk
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from sqlalchemy.exc import SQLAlchemyError

from commerce.api.errors import AppError
from commerce.api.main import api_router
from commerce.core.config import settings

logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    """OpenAPI 操作 ID：{tag}-{route_name}，例如 "orders-checkout" """
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":  # pragma: no cover
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
)


@app.exception_handler(AppError)
async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    """业务异常 -> 统一错误响应"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "message": exc.message, "data": None},
    )


@app.exception_handler(HTTPException)
async def http_error_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """
    HTTP 异常处理器

    detail 为 {"code", "message"} 字典时原样使用，否则错误码取 status_code * 1000。
    """
    payload: dict[str, Any]
    if isinstance(exc.detail, dict) and {"code", "message"} <= set(exc.detail.keys()):
        payload = {"code": exc.detail.get("code"), "message": exc.detail.get("message")}
    else:
        payload = {"code": exc.status_code * 1000, "message": str(exc.detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": payload["code"], "message": payload["message"], "data": None},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """请求参数校验失败，data.errors 中带上详细错误"""
    return JSONResponse(
        status_code=422,
        content={
            "code": 422000,
            "message": "Validation error",
            "data": {"errors": jsonable_errors(exc)},
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # ctx 中可能带有异常对象，无法直接序列化
    return [
        {key: value for key, value in err.items() if key != "ctx"} for err in exc.errors()
    ]


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(_: Request, exc: SQLAlchemyError) -> JSONResponse:
    """数据库异常：记录日志，对外只返回通用错误"""
    logger.exception("Database error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"code": 500000, "message": "Internal server error", "data": None},
    )


if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)

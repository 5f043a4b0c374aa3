"""
API 路由聚合模块

路由模块说明：
- products: 商品目录（列表、详情、管理员创建）
- orders: 订单（结算、查询、状态流转、取消、订单支付）
- payments: 支付（创建、查询、网关回调）
- admin: 管理员查询全部订单 / 支付
- utils: 工具（健康检查）
"""
from fastapi import APIRouter

from commerce.api.routes import admin, orders, payments, products, utils

api_router = APIRouter()

api_router.include_router(products.router)  # /products/*
api_router.include_router(orders.router)  # /orders/*
api_router.include_router(payments.router)  # /payments/*
api_router.include_router(admin.router)  # /admin/*
api_router.include_router(utils.router)  # /utils/*

"""
商品路由模块

商品目录只提供结算链路所需的最小接口：列表、详情、管理员创建。
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from commerce import crud
from commerce.api.deps import AdminUser, SessionDep
from commerce.api.errors import ProductNotFound
from commerce.api.schemas import (
    ApiEnvelope,
    PageInfo,
    ProductCreateRequest,
    ProductData,
    ProductsData,
)
from commerce.models import Product

router = APIRouter(prefix="/products", tags=["products"])


def _to_product_data(product: Product) -> ProductData:
    return ProductData(
        id=product.id,
        name=product.name,
        price=product.price,
        stock=product.stock,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


@router.get("", response_model=ApiEnvelope)
def list_products(
    session: SessionDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
) -> ApiEnvelope:
    rows, count = crud.list_products(
        session=session, offset=(page - 1) * page_size, limit=page_size
    )
    page_info = PageInfo.build(count=count, page=page, page_size=page_size)
    return ApiEnvelope(
        data=ProductsData(data=[_to_product_data(p) for p in rows], **page_info.model_dump())
    )


@router.get("/{product_id}", response_model=ApiEnvelope)
def get_product(session: SessionDep, product_id: int) -> ApiEnvelope:
    product = crud.get_product(session=session, product_id=product_id)
    if not product:
        raise ProductNotFound()
    return ApiEnvelope(data=_to_product_data(product))


@router.post("", response_model=ApiEnvelope)
def create_product(session: SessionDep, _: AdminUser, body: ProductCreateRequest) -> ApiEnvelope:
    """创建商品（管理员）"""
    product = crud.create_product(
        session=session, name=body.name, price=body.price, stock=body.stock
    )
    return ApiEnvelope(data=_to_product_data(product))

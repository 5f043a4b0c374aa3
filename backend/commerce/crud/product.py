"""
商品 / 库存 CRUD 操作

reduce_stock / restore_stock 是修改库存的唯一入口。
两者都是单条带条件的 UPDATE 语句，读-改-写在数据库内原子完成，
并发请求之间不会互相覆盖，也不会把库存扣成负数。

这两个函数只执行语句、不提交事务：由调用方（结算 / 取消）决定提交或回滚。
"""
from decimal import Decimal

from sqlalchemy import update
from sqlmodel import Session, func, select

from commerce.models import Product, utc_now


def get_product(*, session: Session, product_id: int) -> Product | None:
    """根据 ID 查询商品"""
    return session.get(Product, product_id)


def create_product(*, session: Session, name: str, price: Decimal, stock: int) -> Product:
    """创建商品"""
    product = Product(name=name, price=price, stock=stock)
    session.add(product)
    session.commit()
    session.refresh(product)
    return product


def list_products(*, session: Session, offset: int, limit: int) -> tuple[list[Product], int]:
    """分页查询商品，返回 (列表, 总数)"""
    count = session.exec(select(func.count()).select_from(Product)).one()
    rows = session.exec(
        select(Product).order_by(Product.id).offset(offset).limit(limit)
    ).all()
    return list(rows), count


def reduce_stock(*, session: Session, product_id: int, quantity: int) -> bool:
    """
    扣减库存

    UPDATE products SET stock = stock - :qty WHERE id = :id AND stock >= :qty

    Returns:
        True 表示扣减成功；False 表示库存不足（或商品不存在），库存未变
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1


def restore_stock(*, session: Session, product_id: int, quantity: int) -> bool:
    """
    归还库存（补偿操作，仅用于取消订单）

    Returns:
        True 表示归还成功；False 表示商品已不存在
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1

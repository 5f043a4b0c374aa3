"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有业务异常都继承自 AppError，在 main.py 中有统一的异常处理器，
渲染为 {"code": ..., "message": ..., "data": null}。

业务层通过异常类型（而不是错误消息文本）区分错误种类，例如：
    except InsufficientStock: ...

错误码约定：前三位为 HTTP 状态码，后三位为业务编号。
"""
from __future__ import annotations


class AppError(Exception):
    """
    应用自定义异常类

    包含：
    - code: 业务错误码（用于前端区分不同错误）
    - message: 错误消息
    - status_code: HTTP 状态码

    子类通过类属性声明默认值，也可以直接实例化：
        raise AppError(code=400001, message="Bad request", status_code=400)
    """

    code: int = 500000
    message: str = "Internal server error"
    status_code: int = 500

    def __init__(
        self,
        *,
        code: int | None = None,
        message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        if code is not None:
            self.code = code
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


# ------------------------------------------------------------
# 商品 / 库存
# ------------------------------------------------------------


class ProductNotFound(AppError):
    code = 404101
    message = "Product not found"
    status_code = 404


class InsufficientStock(AppError):
    """库存不足：库存扣减的条件更新没有命中任何行"""
    code = 400202
    message = "Insufficient stock"
    status_code = 400


# ------------------------------------------------------------
# 订单
# ------------------------------------------------------------


class EmptyCart(AppError):
    code = 400201
    message = "Cart is empty"
    status_code = 400


class InvalidQuantity(AppError):
    code = 400206
    message = "Quantity must be greater than zero"
    status_code = 400


class InvalidStatusTransition(AppError):
    """订单状态不允许此流转（或并发下状态已被改变）"""
    code = 400203
    message = "Invalid order status transition"
    status_code = 400


class OrderNotCancellable(AppError):
    code = 400204
    message = "Only pending orders can be cancelled"
    status_code = 400


class InvalidOrderStatus(AppError):
    code = 400205
    message = "Invalid order status"
    status_code = 400


class OrderNotFound(AppError):
    code = 404201
    message = "Order not found"
    status_code = 404


class Unauthorized(AppError):
    """资源存在，但不属于当前用户"""
    code = 403001
    message = "Unauthorized"
    status_code = 403


class Forbidden(AppError):
    """当前用户角色无权访问"""
    code = 403002
    message = "Forbidden"
    status_code = 403


# ------------------------------------------------------------
# 支付
# ------------------------------------------------------------


class InvalidPaymentMethod(AppError):
    code = 400301
    message = "Invalid payment method"
    status_code = 400


class PaymentAlreadyExists(AppError):
    code = 400302
    message = "Payment already exists for this order"
    status_code = 400


class OrderNotPending(AppError):
    code = 400303
    message = "Order is not pending"
    status_code = 400


class PaymentAlreadyProcessed(AppError):
    """支付已是终态：结算任务与回调竞争时，后到的一方收到此错误"""
    code = 400304
    message = "Payment already processed"
    status_code = 400


class InvalidPaymentStatus(AppError):
    code = 400305
    message = "Invalid payment status"
    status_code = 400


class PaymentNotFound(AppError):
    code = 404301
    message = "Payment not found"
    status_code = 404


class InvalidCallbackSignature(AppError):
    code = 401301
    message = "Invalid callback signature"
    status_code = 401

"""
枚举类型定义模块

定义应用中使用的所有枚举类型。
所有枚举都继承自 str 和 Enum，这样既可以直接写入数据库字符串列，
又具有枚举的类型安全。

注意：订单状态、支付状态、支付方式的取值会持久化到数据库，
必须保持大写原样，不能随意改名。
"""
from enum import Enum


class UserRole(str, Enum):
    """
    用户角色枚举

    - admin: 管理员（可查看全部订单/支付，可推进订单状态）
    - seller: 卖家
    - user: 普通用户
    """
    admin = "admin"
    seller = "seller"
    user = "user"


class OrderStatus(str, Enum):
    """
    订单状态枚举

    状态流转：
    PENDING -> PAID -> SHIPPED -> COMPLETED
    PENDING -> CANCELLED
    """
    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """
    支付状态枚举

    - PENDING: 已创建，等待结算
    - PROCESSING: 结算中
    - SUCCESS / FAILED: 终态，只能被写入一次
    """
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class PaymentMethod(str, Enum):
    """支付方式枚举"""
    BANK_TRANSFER = "BANK_TRANSFER"
    CREDIT_CARD = "CREDIT_CARD"
    E_WALLET = "E_WALLET"


# 非终态：结算任务或回调仍可写入结果
PAYMENT_OPEN_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)

"""
支付网关接口与模拟实现

PaymentGateway 定义结算任务依赖的两个能力：
- latency(): 本次结算需要等待的秒数
- charge(): 发起扣款，返回 ChargeResult

SimulatedGateway 不调用任何外部服务：延迟在 [min_delay, max_delay] 内随机，
以 success_rate 的概率成功，失败时返回固定的拒绝原因。
"""
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    """一次扣款的结果"""

    success: bool
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """支付网关抽象接口"""

    @abstractmethod
    def latency(self) -> float:
        """结算前需要等待的秒数"""
        ...

    @abstractmethod
    def charge(self, *, transaction_id: str, amount: Decimal, method: str) -> ChargeResult:
        """发起扣款"""
        ...


class SimulatedGateway(PaymentGateway):
    """模拟网关：随机延迟 + 按成功率随机出结果"""

    def __init__(
        self,
        *,
        success_rate: float = 0.9,
        min_delay: int = 2,
        max_delay: int = 5,
        decline_reason: str = "Payment declined by gateway (simulated)",
        rng: random.Random | None = None,
    ) -> None:
        self.success_rate = success_rate
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.decline_reason = decline_reason
        self._rng = rng or random.Random()

    def latency(self) -> float:
        return self._rng.randint(self.min_delay, self.max_delay)

    def charge(self, *, transaction_id: str, amount: Decimal, method: str) -> ChargeResult:
        if self._rng.random() < self.success_rate:
            logger.info("Simulated charge approved: txn=%s amount=%s method=%s", transaction_id, amount, method)
            return ChargeResult(success=True)
        logger.info("Simulated charge declined: txn=%s amount=%s method=%s", transaction_id, amount, method)
        return ChargeResult(success=False, failure_reason=self.decline_reason)


def generate_transaction_id(rng: random.Random | None = None) -> str:
    """生成网关交易号：TXN-{纳秒时间戳}-{4 位随机数}"""
    suffix = (rng or random).randint(0, 9999)
    return f"TXN-{time.time_ns()}-{suffix:04d}"


def get_payment_gateway() -> PaymentGateway:
    """按配置创建模拟网关"""
    from commerce.core.config import settings

    return SimulatedGateway(
        success_rate=settings.PAYMENT_SUCCESS_RATE,
        min_delay=settings.PAYMENT_MIN_DELAY_SECONDS,
        max_delay=settings.PAYMENT_MAX_DELAY_SECONDS,
        decline_reason=settings.PAYMENT_DECLINE_REASON,
    )

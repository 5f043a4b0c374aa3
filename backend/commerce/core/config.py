"""
应用配置模块

使用 Pydantic Settings 管理环境变量。配置从项目根目录的 .env 文件读取，
环境变量优先级最高，其次是 .env，最后是代码中的默认值。

配置分组：
- 基础：API 前缀、密钥、运行环境、CORS
- 存储：PostgreSQL、Redis
- 支付结算：模拟网关的延迟 / 成功率、回调密钥、结算队列、恢复任务参数
"""
import secrets
import warnings
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    """
    解析 CORS 配置

    支持逗号分隔的字符串（"http://a.com,http://b.com"）或 JSON 列表。
    """
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """应用配置，进程内通过 settings 单例访问"""

    model_config = SettingsConfigDict(
        # 项目根目录的 .env（backend/ 的上一级）
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = secrets.token_urlsafe(32)  # JWT 签名密钥
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        """CORS 允许的源（去除尾部斜杠）"""
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    PROJECT_NAME: str
    SENTRY_DSN: HttpUrl | None = None

    POSTGRES_SERVER: str
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> PostgresDsn:
        return PostgresDsn.build(
            scheme="postgresql+psycopg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    # Redis（恢复任务的分布式锁）
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None

    # 初始管理员（initial_data 脚本创建）
    FIRST_ADMIN_EMAIL: str | None = None

    # 模拟支付网关
    PAYMENT_MIN_DELAY_SECONDS: int = 2  # 结算延迟下限（秒）
    PAYMENT_MAX_DELAY_SECONDS: int = 5  # 结算延迟上限（秒，含）
    PAYMENT_SUCCESS_RATE: float = 0.9
    PAYMENT_DECLINE_REASON: str = "Payment declined by gateway (simulated)"
    PAYMENT_CALLBACK_SECRET: str | None = None  # 网关回调共享密钥，未配置时不校验

    # 支付恢复任务
    PAYMENT_STALE_AFTER_SECONDS: int = 300  # PENDING / PROCESSING 超过该时长视为卡住
    PAYMENT_STALE_MARGIN_SECONDS: int = 30  # 卡住判定至少比网关最大延迟多出的秒数
    PAYMENT_RECONCILE_INTERVAL_SECONDS: int = 60
    PAYMENT_RECONCILE_BATCH_SIZE: int = 100

    # 结算队列（Redis Streams，按环境区分 stream key）
    PAYMENT_STREAM_MAXLEN: int = 100_000
    PAYMENT_STREAM_BATCH_SIZE: int = 10  # 每次 xreadgroup 读取的消息数
    PAYMENT_STREAM_BLOCK_MS: int = 5000
    PAYMENT_STREAM_CLAIM_IDLE_MS: int = 60_000  # 未确认消息空闲超过该时长后由其他消费者接手
    PAYMENT_WORKER_CONSUMER: str | None = None  # 消费者名，默认 主机名-进程号

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """
        检查敏感配置是否仍为默认值 "changethis"

        本地环境只警告；其他环境直接报错。
        """
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("SECRET_KEY", self.SECRET_KEY)
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        self._check_default_secret("PAYMENT_CALLBACK_SECRET", self.PAYMENT_CALLBACK_SECRET)
        return self

    @model_validator(mode="after")
    def _check_payment_settings(self) -> Self:
        """校验结算参数：延迟区间、成功率，以及卡住判定与网关延迟的关系"""
        if self.PAYMENT_MIN_DELAY_SECONDS < 0:
            raise ValueError("PAYMENT_MIN_DELAY_SECONDS must be >= 0")
        if self.PAYMENT_MAX_DELAY_SECONDS < self.PAYMENT_MIN_DELAY_SECONDS:
            raise ValueError(
                "PAYMENT_MAX_DELAY_SECONDS must be >= PAYMENT_MIN_DELAY_SECONDS"
            )
        if not 0.0 <= self.PAYMENT_SUCCESS_RATE <= 1.0:
            raise ValueError("PAYMENT_SUCCESS_RATE must be between 0 and 1")
        if self.PAYMENT_STALE_MARGIN_SECONDS < 1:
            raise ValueError("PAYMENT_STALE_MARGIN_SECONDS must be >= 1")
        # 正在等待网关的结算不能被恢复任务当成卡住
        min_stale = self.PAYMENT_MAX_DELAY_SECONDS + self.PAYMENT_STALE_MARGIN_SECONDS
        if self.PAYMENT_STALE_AFTER_SECONDS < min_stale:
            raise ValueError(
                "PAYMENT_STALE_AFTER_SECONDS must be >= "
                f"PAYMENT_MAX_DELAY_SECONDS + PAYMENT_STALE_MARGIN_SECONDS ({min_stale})"
            )
        if self.PAYMENT_STREAM_CLAIM_IDLE_MS <= self.PAYMENT_MAX_DELAY_SECONDS * 1000:
            raise ValueError(
                "PAYMENT_STREAM_CLAIM_IDLE_MS must exceed PAYMENT_MAX_DELAY_SECONDS"
            )
        return self


settings = Settings()  # type: ignore

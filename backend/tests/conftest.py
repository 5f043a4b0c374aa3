from __future__ import annotations

import os

# Settings 在导入时读取环境变量；测试不依赖 .env 文件。
os.environ.setdefault("PROJECT_NAME", "commerce-test")
os.environ.setdefault("POSTGRES_SERVER", "localhost")
os.environ.setdefault("POSTGRES_USER", "postgres")

from collections.abc import Callable, Generator  # noqa: E402
from datetime import timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine, delete  # noqa: E402

from commerce import crud  # noqa: E402
from commerce.api.deps import get_db  # noqa: E402
from commerce.core.security import create_access_token  # noqa: E402
from commerce.enums import PaymentStatus, UserRole  # noqa: E402
from commerce.integrations.payment_gateway import ChargeResult, PaymentGateway  # noqa: E402
from commerce.main import app  # noqa: E402
from commerce.models import Order, OrderItem, Payment, Product, User  # noqa: E402
from commerce.services.order_service import OrderService  # noqa: E402
from commerce.services.payment_service import (  # noqa: E402
    PaymentService,
    get_payment_service,
)
from commerce.worker import settlement_worker  # noqa: E402


class RecordingQueue:
    """记录投递的结算消息，由测试显式交给 worker 处理，不依赖真实 Redis"""

    def __init__(self) -> None:
        self.messages: list[dict[str, str]] = []
        self.service: PaymentService | None = None

    def enqueue(self, payment_id: int, resume: bool = False) -> str:
        self.messages.append({"payment_id": str(payment_id), "resume": "1" if resume else "0"})
        return f"{len(self.messages)}-0"

    def run_all(self) -> list[PaymentStatus | None]:
        assert self.service is not None
        pending, self.messages = self.messages, []
        return [settlement_worker.handle_message(self.service, fields) for fields in pending]


class ScriptedGateway(PaymentGateway):
    """零延迟网关：默认成功，可预先排队失败结果"""

    def __init__(self) -> None:
        self.outcomes: list[ChargeResult] = []
        self.charged: list[str] = []

    def will_decline(self, reason: str = "Payment declined by gateway (simulated)") -> None:
        self.outcomes.append(ChargeResult(success=False, failure_reason=reason))

    def latency(self) -> float:
        return 0

    def charge(self, *, transaction_id: str, amount: Decimal, method: str) -> ChargeResult:
        self.charged.append(transaction_id)
        if self.outcomes:
            return self.outcomes.pop(0)
        return ChargeResult(success=True)


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        session.rollback()
        # Clean tables after each test (children first).
        session.exec(delete(Payment))
        session.exec(delete(OrderItem))
        session.exec(delete(Order))
        session.exec(delete(Product))
        session.exec(delete(User))
        session.commit()


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def order_service() -> OrderService:
    return OrderService()


@pytest.fixture
def payment_service(engine, order_service, queue, gateway) -> PaymentService:
    service = PaymentService(
        orders=order_service,
        gateway=gateway,
        queue=queue,  # type: ignore[arg-type]
        session_factory=lambda: Session(engine),
        sleep=lambda _: None,
    )
    queue.service = service
    return service


@pytest.fixture(scope="function")
def client(engine, payment_service) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_payment_service] = lambda: payment_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db) -> Callable[..., User]:
    counter = iter(range(1, 10_000))

    def _make(role: UserRole = UserRole.user, email: str | None = None) -> User:
        email = email or f"user{next(counter)}@example.com"
        return crud.create_user(session=db, email=email, role=role)

    return _make


@pytest.fixture
def make_product(db) -> Callable[..., Product]:
    def _make(name: str = "Widget", price: str = "10.00", stock: int = 10) -> Product:
        return crud.create_product(session=db, name=name, price=Decimal(price), stock=stock)

    return _make


@pytest.fixture
def user(make_user) -> User:
    return make_user(email="alice@example.com")


@pytest.fixture
def other_user(make_user) -> User:
    return make_user(email="bob@example.com")


@pytest.fixture
def admin(make_user) -> User:
    return make_user(role=UserRole.admin, email="admin@example.com")


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, expires_delta=timedelta(hours=1))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    return auth_headers

from __future__ import annotations

import pytest
import redis
from sqlmodel import select

from commerce import crud
from commerce.api import deps
from commerce.core import db as core_db
from commerce.core.config import Settings, parse_cors, settings
from commerce.core.redis_client import RedisClient
from commerce.core.settlement_queue import (
    SETTLEMENT_GROUP,
    SettlementQueue,
    settlement_stream_key,
)
from commerce.enums import PaymentStatus, UserRole
from commerce.services.payment_service import ReconcileReport
from commerce.worker import settlement_worker, tasks

BASE_SETTINGS = {
    "PROJECT_NAME": "x",
    "POSTGRES_SERVER": "localhost",
    "POSTGRES_USER": "postgres",
    "POSTGRES_DB": "app",
}


class FakeRedis:
    """只实现锁（set / eval）与结算队列（Streams）用到的命令"""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.streams: dict[str, list[tuple[str, dict[str, str]]]] = {}
        self.groups: dict[tuple[str, str], dict] = {}
        self.now_ms = 0

    def ping(self) -> bool:
        return True

    def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def eval(self, script, numkeys, key, value):
        if self.store.get(key) == value:
            del self.store[key]
            return 1
        return 0

    def xadd(self, key, fields, id="*", maxlen=None, approximate=True):
        entries = self.streams.setdefault(key, [])
        message_id = f"{len(entries) + 1}-0"
        entries.append((message_id, dict(fields)))
        return message_id

    def xgroup_create(self, key, group, id="0", mkstream=False):
        if (key, group) in self.groups:
            raise redis.ResponseError("BUSYGROUP Consumer Group name already exists")
        self.streams.setdefault(key, [])
        self.groups[(key, group)] = {"delivered": 0, "pending": {}}
        return True

    def xreadgroup(self, group, consumer, streams, count=None, block=None):
        resp = []
        for key in streams:
            state = self.groups[(key, group)]
            batch = self.streams[key][state["delivered"]:][:count]
            state["delivered"] += len(batch)
            for message_id, _fields in batch:
                state["pending"][message_id] = (consumer, self.now_ms)
            if batch:
                resp.append([key, batch])
        return resp

    def xautoclaim(self, key, group, consumer, min_idle_time, start_id="0-0", count=10):
        state = self.groups[(key, group)]
        claimed = []
        for message_id, fields in self.streams[key]:
            owner = state["pending"].get(message_id)
            if owner and self.now_ms - owner[1] >= min_idle_time and len(claimed) < count:
                state["pending"][message_id] = (consumer, self.now_ms)
                claimed.append((message_id, fields))
        return ["0-0", claimed, []]

    def xack(self, key, group, *message_ids):
        pending = self.groups[(key, group)]["pending"]
        return sum(1 for m in message_ids if pending.pop(m, None) is not None)


class BrokenRedis:
    def ping(self):
        raise redis.ConnectionError("down")

    def set(self, *args, **kwargs):
        raise redis.ConnectionError("down")

    def eval(self, *args, **kwargs):
        raise redis.ConnectionError("down")

    def xadd(self, *args, **kwargs):
        raise redis.ConnectionError("down")

    def xreadgroup(self, *args, **kwargs):
        raise redis.ConnectionError("down")


@pytest.fixture
def lock_client() -> RedisClient:
    client = RedisClient()
    client.client = FakeRedis()  # type: ignore[assignment]
    return client


class FakePaymentService:
    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []

    def reconcile(self, *, stale_after_seconds: int, batch_size: int = 100) -> ReconcileReport:
        self.calls.append((stale_after_seconds, batch_size))
        return ReconcileReport(resumed=2, repaired=1)


def test_lock_is_exclusive_and_released_by_owner_only(lock_client):
    assert lock_client.acquire_lock("k", "a", expire_seconds=10) is True
    assert lock_client.acquire_lock("k", "b", expire_seconds=10) is False
    assert lock_client.release_lock("k", "b") is False
    assert lock_client.release_lock("k", "a") is True
    assert lock_client.acquire_lock("k", "b", expire_seconds=10) is True


def test_lock_treats_redis_errors_as_not_acquired():
    client = RedisClient()
    client.client = BrokenRedis()  # type: ignore[assignment]

    assert client.ping() is False
    assert client.acquire_lock("k", "a") is False
    assert client.release_lock("k", "a") is False


def test_reconcile_task_runs_and_releases_lock(lock_client, monkeypatch):
    service = FakePaymentService()
    monkeypatch.setattr(tasks, "get_redis_client", lambda: lock_client)
    monkeypatch.setattr(tasks, "get_payment_service", lambda: service)

    report = tasks.reconcile_payments()

    assert report == ReconcileReport(resumed=2, repaired=1)
    assert service.calls == [
        (settings.PAYMENT_STALE_AFTER_SECONDS, settings.PAYMENT_RECONCILE_BATCH_SIZE)
    ]
    assert tasks.RECONCILE_LOCK_KEY not in lock_client.client.store


def test_reconcile_task_skips_when_lock_held(lock_client, monkeypatch):
    service = FakePaymentService()
    monkeypatch.setattr(tasks, "get_redis_client", lambda: lock_client)
    monkeypatch.setattr(tasks, "get_payment_service", lambda: service)
    lock_client.acquire_lock(tasks.RECONCILE_LOCK_KEY, "other-instance")

    assert tasks.reconcile_payments() is None
    assert service.calls == []
    assert lock_client.client.store[tasks.RECONCILE_LOCK_KEY] == "other-instance"


def test_reconcile_task_releases_lock_on_error(lock_client, monkeypatch):
    class Exploding:
        def reconcile(self, **_):
            raise RuntimeError("boom")

    monkeypatch.setattr(tasks, "get_redis_client", lambda: lock_client)
    monkeypatch.setattr(tasks, "get_payment_service", lambda: Exploding())

    with pytest.raises(RuntimeError):
        tasks.reconcile_payments()
    assert tasks.RECONCILE_LOCK_KEY not in lock_client.client.store


class FakeSettler:
    """记录 settle 调用，可预先排队异常"""

    def __init__(self) -> None:
        self.calls: list[tuple[int, bool]] = []
        self.errors: list[Exception] = []

    def settle(self, payment_id: int, resume: bool = False) -> PaymentStatus | None:
        self.calls.append((payment_id, resume))
        if self.errors:
            raise self.errors.pop(0)
        return PaymentStatus.SUCCESS


@pytest.fixture
def stream_client(lock_client) -> RedisClient:
    lock_client.xgroup_create(settlement_stream_key(), SETTLEMENT_GROUP, "0", mkstream=True)
    return lock_client


def test_settlement_queue_writes_to_environment_stream(stream_client):
    queue = SettlementQueue(stream_client)

    assert queue.stream_key == f"payments:settlement:{settings.ENVIRONMENT}"
    assert queue.enqueue(7) == "1-0"
    assert queue.enqueue(8, resume=True) == "2-0"
    assert stream_client.client.streams[queue.stream_key] == [
        ("1-0", {"payment_id": "7", "resume": "0"}),
        ("2-0", {"payment_id": "8", "resume": "1"}),
    ]


def test_settlement_queue_reports_unavailable_redis():
    client = RedisClient()
    client.client = BrokenRedis()  # type: ignore[assignment]

    assert SettlementQueue(client, stream_key="s").enqueue(1) is None
    assert client.xreadgroup("g", "c", {"s": ">"}) == []


def test_consumer_group_creation_is_idempotent(stream_client):
    assert stream_client.xgroup_create(settlement_stream_key(), SETTLEMENT_GROUP) is True


def test_worker_settles_and_acks_messages(stream_client):
    key = settlement_stream_key()
    queue = SettlementQueue(stream_client)
    queue.enqueue(1)
    queue.enqueue(2, resume=True)
    service = FakeSettler()

    acked = settlement_worker.run_once(stream_client, service, key, "c1")  # type: ignore[arg-type]

    assert acked == 2
    assert service.calls == [(1, False), (2, True)]
    assert stream_client.client.groups[(key, SETTLEMENT_GROUP)]["pending"] == {}
    assert settlement_worker.run_once(stream_client, service, key, "c1") == 0  # type: ignore[arg-type]


def test_failed_message_stays_pending_until_reclaimed(stream_client):
    key = settlement_stream_key()
    fake = stream_client.client
    SettlementQueue(stream_client).enqueue(5)
    service = FakeSettler()
    service.errors.append(RuntimeError("db down"))

    assert settlement_worker.run_once(stream_client, service, key, "c1") == 0  # type: ignore[arg-type]
    assert fake.groups[(key, SETTLEMENT_GROUP)]["pending"]["1-0"][0] == "c1"

    # not idle long enough yet
    assert settlement_worker.run_once(stream_client, service, key, "c2") == 0  # type: ignore[arg-type]
    assert service.calls == [(5, False)]

    fake.now_ms += settings.PAYMENT_STREAM_CLAIM_IDLE_MS
    assert settlement_worker.run_once(stream_client, service, key, "c2") == 1  # type: ignore[arg-type]
    assert service.calls == [(5, False), (5, False)]
    assert fake.groups[(key, SETTLEMENT_GROUP)]["pending"] == {}


def test_handle_message_and_consumer_name(monkeypatch):
    service = FakeSettler()

    handle = settlement_worker.handle_message
    assert handle(service, {"payment_id": "9"}) == PaymentStatus.SUCCESS  # type: ignore[arg-type]
    handle(service, {"payment_id": "9", "resume": "1"})  # type: ignore[arg-type]
    assert service.calls == [(9, False), (9, True)]

    monkeypatch.setattr(settings, "PAYMENT_WORKER_CONSUMER", "worker-a")
    assert settlement_worker.consumer_name() == "worker-a"
    monkeypatch.setattr(settings, "PAYMENT_WORKER_CONSUMER", None)
    assert settlement_worker.consumer_name().startswith("settlement-")


def test_settings_validation_paths():
    assert parse_cors(["a"]) == ["a"]
    assert parse_cors("http://a, http://b") == ["http://a", "http://b"]
    with pytest.raises(ValueError):
        parse_cors(123)

    with pytest.raises(ValueError):
        Settings(
            ENVIRONMENT="production",
            SECRET_KEY="changethis",
            POSTGRES_PASSWORD="not-changethis",
            **BASE_SETTINGS,
        )

    with pytest.raises(ValueError):
        Settings(
            ENVIRONMENT="production",
            SECRET_KEY="s",
            POSTGRES_PASSWORD="p",
            PAYMENT_CALLBACK_SECRET="changethis",
            **BASE_SETTINGS,
        )


@pytest.mark.parametrize(
    "overrides",
    [
        {"PAYMENT_MIN_DELAY_SECONDS": -1},
        {"PAYMENT_MIN_DELAY_SECONDS": 5, "PAYMENT_MAX_DELAY_SECONDS": 2},
        {"PAYMENT_SUCCESS_RATE": 1.5},
        {"PAYMENT_STALE_MARGIN_SECONDS": 0},
        {"PAYMENT_STALE_AFTER_SECONDS": 1, "PAYMENT_MAX_DELAY_SECONDS": 5},
        {"PAYMENT_STALE_AFTER_SECONDS": 60, "PAYMENT_MAX_DELAY_SECONDS": 45},
        {"PAYMENT_STREAM_CLAIM_IDLE_MS": 1000},
    ],
)
def test_settings_reject_bad_payment_parameters(overrides):
    with pytest.raises(ValueError):
        Settings(**BASE_SETTINGS, **overrides)


def test_settings_defaults_for_gateway():
    s = Settings(**BASE_SETTINGS)
    assert (s.PAYMENT_MIN_DELAY_SECONDS, s.PAYMENT_MAX_DELAY_SECONDS) == (2, 5)
    assert s.PAYMENT_SUCCESS_RATE == 0.9
    assert str(s.SQLALCHEMY_DATABASE_URI).startswith("postgresql+psycopg://")


def test_get_db_generator_uses_engine_override(engine, monkeypatch):
    monkeypatch.setattr(deps, "engine", engine)
    gen = deps.get_db()
    session = next(gen)
    session.exec(select(1))
    gen.close()


def test_prestart_and_seed_scripts(db, engine, lock_client, monkeypatch):
    from commerce import backend_pre_start, initial_data

    # 指向测试引擎，无需 PostgreSQL / Redis
    monkeypatch.setattr(backend_pre_start, "engine", engine)
    monkeypatch.setattr(backend_pre_start, "get_redis_client", lambda: lock_client)
    monkeypatch.setattr(initial_data, "engine", engine)

    backend_pre_start.init(engine)
    backend_pre_start.wait_for_redis(lock_client)
    backend_pre_start.main()

    monkeypatch.setattr(settings, "FIRST_ADMIN_EMAIL", None)
    initial_data.init()
    assert crud.get_user_by_email(session=db, email="root@example.com") is None

    monkeypatch.setattr(settings, "FIRST_ADMIN_EMAIL", "root@example.com")
    initial_data.main()
    core_db.init_db(db)

    admin = crud.get_user_by_email(session=db, email="root@example.com")
    assert admin is not None
    assert admin.role == UserRole.admin

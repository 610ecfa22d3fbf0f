from __future__ import annotations

import pytest_asyncio
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from services.ledger_service.app import settings as ledger_settings_module
from services.ledger_service.app.db.base import Base
from services.ledger_service.app.db.session import build_session_factory
from services.ledger_service.app.dependencies import get_current_user_id, get_ledger_service, get_session_factory
from services.ledger_service.app.service import LedgerService
from services.ledger_service.app.settings import LedgerSettings

ADMIN_ID = 1
USER_ID = 42


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []

    async def notify(self, event_type: str, payload: dict) -> None:
        self.sent.append((event_type, payload))

    def event_types(self) -> list[str]:
        return [event_type for event_type, _ in self.sent]


class FailingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    async def notify(self, event_type: str, payload: dict) -> None:
        self.calls += 1
        raise RuntimeError("smtp relay down")


@pytest_asyncio.fixture()
async def session_factory(tmp_path):
    # One file per test so every session gets its own connection
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture()
async def settings() -> LedgerSettings:
    return LedgerSettings(bootstrap_admin_ids=[ADMIN_ID], otel_enabled=False, notification_url=None)


@pytest_asyncio.fixture()
async def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture()
async def ledger(session_factory, settings, notifier) -> LedgerService:
    return LedgerService(session_factory, settings=settings, notifier=notifier)


@pytest_asyncio.fixture()
async def failing_ledger(session_factory, settings) -> LedgerService:
    return LedgerService(session_factory, settings=settings, notifier=FailingNotifier())


@pytest_asyncio.fixture()
async def completed_deposit(ledger):
    """Submit a deposit and have the bootstrap admin confirm it; returns the entry id."""

    async def _deposit(user_id: int, amount: str, service: LedgerService | None = None) -> int:
        service = service or ledger
        entry = await service.submit_deposit(user_id, amount, "USDT")
        await service.admin_set_entry_status(entry.id, "completed", ADMIN_ID)
        return entry.id

    return _deposit


@pytest_asyncio.fixture()
async def ledger_test_app(monkeypatch, ledger, session_factory):
    ledger_settings_module.ledger_settings.cache_clear()
    monkeypatch.setenv("LEDGER_OTEL_ENABLED", "false")

    async def fake_run_migrations(*_args, **_kwargs) -> None:  # pragma: no cover - helper
        return None

    monkeypatch.setattr(
        "services.ledger_service.app.main.run_alembic_migrations",
        fake_run_migrations,
    )

    def _override_current_user(request: Request) -> int:
        return int(request.headers.get("x-test-user", USER_ID))

    from services.ledger_service.app.main import create_app

    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_ledger_service] = lambda: ledger
    app.dependency_overrides[get_current_user_id] = _override_current_user
    yield app

    ledger_settings_module.ledger_settings.cache_clear()
    monkeypatch.delenv("LEDGER_OTEL_ENABLED", raising=False)


@pytest_asyncio.fixture()
async def client(ledger_test_app):
    transport = ASGITransport(app=ledger_test_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

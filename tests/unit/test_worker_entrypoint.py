"""Tests for the worker process entrypoint and its health endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from src.mailflow.core.db import migrations, run_migrations_async
from src.mailflow.core.notifications.email import LogOnlyTransport
from src.mailflow.jobs import build_workers
from src.mailflow.queue import QueueName
from src.mailflow.worker import create_health_app, parse_args

pytestmark = pytest.mark.unit


def test_parse_args_defaults_to_all_queues():
    args = parse_args([])
    assert args.queues == ["email", "campaign", "automation", "analytics"]


def test_parse_args_selected_queues():
    assert parse_args(["--queues", "automation", "email"]).queues == ["automation", "email"]


def test_parse_args_rejects_unknown_queue():
    with pytest.raises(SystemExit):
        parse_args(["--queues", "sms"])


def test_build_workers_sized_from_definitions(queue_service, settings):
    workers = build_workers(
        queue_service,
        session_factory=None,  # type: ignore[arg-type]
        transport=LogOnlyTransport(),
        queues=[QueueName.AUTOMATION, QueueName.EMAIL],
        settings=settings,
    )

    assert [(w.queue.name, w.concurrency) for w in workers] == [("automation", 20), ("email", 10)]
    assert workers[0].on_failed is not None
    assert workers[1].on_failed is None


async def test_health_endpoints(queue_service, settings):
    workers = build_workers(
        queue_service, None, LogOnlyTransport(), [QueueName.EMAIL], settings  # type: ignore[arg-type]
    )
    app = create_health_app(["email"], workers)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://worker") as client:
        health = await client.get("/health")
        ready = await client.get("/ready")

    assert health.status_code == 200
    assert health.json() == {
        "status": "healthy",
        "service": "mailflow-worker",
        "queues": ["email"],
        "in_flight": {"email": 0},
    }
    assert ready.json() == {"status": "ready"}


def test_parse_args_migrate_flag():
    assert parse_args([]).migrate is False
    assert parse_args(["--migrate"]).migrate is True


async def test_migrations_upgrade_to_head(monkeypatch: pytest.MonkeyPatch):
    calls: list[tuple[str, str]] = []

    def fake_upgrade(config, revision: str) -> None:
        calls.append((config.config_file_name, revision))

    monkeypatch.setattr(migrations.command, "upgrade", fake_upgrade)

    await run_migrations_async()

    assert calls == [("alembic.ini", "head")]

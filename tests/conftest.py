from datetime import UTC, datetime
from typing import Any

import pytest

from cadence.infrastructure.clock import FrozenClock
from cadence.infrastructure.database import AppDatabase
from cadence.scheduling.notifier import EmailMessage
from cadence.scheduling.types import EngineResponse

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


class FakeEngine:
    """Execution engine double. Responses are keyed by workflow_id; default is success."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.responses: dict[str, EngineResponse | Exception] = {}

    async def invoke(self, workflow_id: str, inputs: Any) -> EngineResponse:
        self.calls.append((workflow_id, inputs))
        response = self.responses.get(workflow_id, EngineResponse(success=True, data={"ok": True}))
        if isinstance(response, Exception):
            raise response
        return response


class RecordingTransport:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.attempts: list[EmailMessage] = []
        self.fail_for = fail_for or set()

    async def send(self, message: EmailMessage) -> None:
        self.attempts.append(message)
        if message.to in self.fail_for:
            raise ConnectionError(f"smtp down for {message.to}")


@pytest.fixture
def db() -> AppDatabase:
    """Create an in-memory database for testing."""
    app_db = AppDatabase()
    app_db._init_test()
    return app_db


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()

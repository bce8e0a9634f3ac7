"""Shared fixtures: a fake completion gateway and a TestClient wired to it."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

# Must be set before main/settings are imported
_UPLOAD_DIR = tempfile.mkdtemp(prefix="farmer-chat-uploads-")
os.environ["UPLOAD_DIR"] = _UPLOAD_DIR
os.environ["GEMINI_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

from conversation_store import ConversationStore
from errors import BackendError
from gateway import CompletionGateway


class FakeGateway(CompletionGateway):
    """Records prompts and answers with a canned reply, or fails on demand."""

    def __init__(self, reply: str = "ok", api_key: str = "test-key"):
        super().__init__(api_key=api_key, model_name="fake-model")
        self.reply = reply
        self.error: Exception | None = None
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.ensure_configured()
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def upload_dir():
    path = Path(_UPLOAD_DIR)
    for child in path.iterdir():
        if child.is_file():
            child.unlink()
    yield path


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def failing_gateway(gateway):
    gateway.error = BackendError(details="quota exceeded")
    return gateway


@pytest.fixture
def app(store, gateway, upload_dir):
    from main import app as _app, get_gateway, get_store

    _app.dependency_overrides[get_store] = lambda: store
    _app.dependency_overrides[get_gateway] = lambda: gateway
    yield _app
    _app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_UPLOAD_DIR, ignore_errors=True)

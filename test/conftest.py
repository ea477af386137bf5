from __future__ import annotations

import os

import pytest

# Keep tests independent of a developer's .env: nothing may reach a real model
# provider or a file database unless a test asks for it explicitly.
os.environ.setdefault("PLANFORGE_AI_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PLANFORGE_AI_REASONING_MODEL", "test")

from planforge_ai.engine.repos import InMemoryExecutionStateRepository  # noqa: E402


@pytest.fixture
def memory_repo() -> InMemoryExecutionStateRepository:
    return InMemoryExecutionStateRepository()

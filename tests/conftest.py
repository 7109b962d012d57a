"""Global pytest configuration."""

from __future__ import annotations

import os

import pytest

from iurl.scanner.models import AIAssessment
from iurl.storage import AllowlistStore, Database

# Never reach a real AI endpoint from tests even if .env sets one.
os.environ["AI_ENDPOINT"] = ""


class StaticAIAdapter:
    """Stands in for AIRiskAdapter; returns a fixed assessment and counts calls."""

    def __init__(self, assessment: AIAssessment | None = None):
        self.assessment = assessment or AIAssessment.empty()
        self.calls: list[str] = []

    @property
    def enabled(self) -> bool:
        return True

    async def assess(self, url: str) -> AIAssessment:
        self.calls.append(url)
        return self.assessment


@pytest.fixture
def static_ai():
    return StaticAIAdapter


@pytest.fixture
async def database(tmp_path):
    db = Database(tmp_path / "iurl.db")
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def allowlist_store(database):
    return AllowlistStore(database)

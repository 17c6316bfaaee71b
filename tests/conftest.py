"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from xfactor.agents.personalization import PersonalizationAgent
from xfactor.core.agent_client import AgentClient, AgentClientConfig
from xfactor.core.events import EventBus
from xfactor.core.loops.executor import LoopExecutor
from xfactor.core.loops.registry import LoopRegistry
from xfactor.core.types import Persona
from xfactor.services.smart_links import SmartLinkService
from xfactor.services.summary import (
    NextStep,
    SessionSummary,
    SkillGap,
    SummaryMetadata,
    UpcomingExam,
)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full pipeline wiring)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def event_bus():
    """Fresh event bus with a small history."""
    return EventBus(max_history_size=100)


@pytest.fixture
def smart_links():
    """In-memory smart link service."""
    return SmartLinkService(secret="test-secret")


@pytest.fixture
def student_summary():
    """Session summary with a high-priority gap and an upcoming exam."""
    return SessionSummary(
        session_id="session-001",
        user_id="student-001",
        summary="Worked on factoring quadratics.",
        key_points=["Practiced factoring quadratic equations"],
        skill_gaps=[
            SkillGap(skill="quadratic-equations", subject="Algebra", priority="medium"),
            SkillGap(skill="factoring", subject="Algebra", priority="high"),
        ],
        strengths=["Shows understanding of concepts"],
        recommendations=["Focus on factoring with additional practice problems"],
        next_steps=[NextStep(action="Practice factoring", priority="high")],
        metadata=SummaryMetadata(
            subject="Algebra",
            topic="Quadratics",
            upcoming_exam=UpcomingExam(
                date="2026-11-02T00:00:00+00:00",
                subject="Algebra",
                topics=["Factoring"],
            ),
        ),
    )


@pytest.fixture
def empty_summary():
    """Session summary with nothing actionable in it."""
    return SessionSummary(session_id="session-002", user_id="student-002")


@pytest.fixture
def personas():
    return list(Persona)


@pytest.fixture
def agent_client():
    """Client with the personalization agent registered and fast retries."""
    client = AgentClient(AgentClientConfig(retry_delay_ms=0))
    client.register_agent(PersonalizationAgent())
    return client


@pytest.fixture
def loop_registry(smart_links, event_bus):
    return LoopRegistry.with_default_loops(smart_links, event_bus=event_bus)


@pytest.fixture
def loop_executor(loop_registry, agent_client, event_bus, smart_links):
    return LoopExecutor(loop_registry, agent_client, event_bus=event_bus, smart_links=smart_links)

"""
Global pytest configuration and fixtures for Persona Reputation Ledger tests
"""

import pytest
import pytest_asyncio
import sys
from pathlib import Path
from uuid import uuid4

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.config.database import CONFIG_DIR, ReputationConfig
from backend.repositories.memory_repository import InMemoryPersonaRepository
from backend.services.persona_service import PersonaService
from backend.services.reputation_engine import ReputationEngine
from backend.services.scoring_rules import ScoringRuleBook
from backend.utils.clock import ManualClock

from tests.fixtures.personas import build_persona, build_template


@pytest.fixture
def clock():
    """Clock pinned to 2024-01-01 UTC"""
    return ManualClock()


@pytest.fixture
def store():
    return InMemoryPersonaRepository()


@pytest.fixture
def reputation_config():
    """Defaults with retries that do not sleep"""
    return ReputationConfig(event_retry_delay=0.0)


@pytest.fixture
def scoring_rules():
    return ScoringRuleBook.from_yaml(CONFIG_DIR / "scoring_rules.yaml")


@pytest.fixture
def engine(store, clock, reputation_config, scoring_rules):
    return ReputationEngine(
        store,
        config=reputation_config,
        clock=clock,
        scoring_rules=scoring_rules
    )


@pytest.fixture
def persona_service(store, engine):
    return PersonaService(store, engine)


@pytest.fixture
def project_id():
    return uuid4()


@pytest.fixture
def make_template(store):
    """Factory that stores a template and returns it"""
    async def _make(**overrides):
        return await store.create_template(build_template(**overrides))
    return _make


@pytest.fixture
def make_persona(store, make_template, project_id):
    """Factory that stores a persona (and a template when none is given)"""
    async def _make(template=None, **overrides):
        if template is None:
            template = await make_template()
        overrides.setdefault("project_id", project_id)
        return await store.create_persona(build_persona(template, **overrides))
    return _make


@pytest_asyncio.fixture
async def persona(make_persona):
    """Active persona on a template with a kudos quota of 5"""
    return await make_persona()


# Markers for different test types
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )

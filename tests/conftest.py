"""
Shared pytest fixtures for skillchain tests.

This module provides:
- A file-backed SQLite store per test (schema created)
- Settings with session state off and small defaults
- ChainDefinitionService / ExecutionController wired to the store
- Chain builders for the common shapes used across test modules

Usage:
    Fixtures are auto-discovered by pytest::

        def test_something(controller, two_link_chain):
            run = controller.start_execution(two_link_chain.id)
"""

import sys
from pathlib import Path

import pytest
import structlog

# Ensure skillchain package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from skillchain.chains.controller import ExecutionController
from skillchain.chains.definitions import ChainDefinitionService, LinkSpec
from skillchain.chains.models import Chain
from skillchain.chains.registry import StaticSkillRegistry
from skillchain.core.config import SkillChainSettings, clear_settings_cache
from skillchain.core.orm import create_skillchain_engine, init_schema, skillchain_session_factory
from skillchain.ops import OperationContext


# =============================================================================
# Store
# =============================================================================


@pytest.fixture()
def engine(tmp_path):
    """SQLite file engine with all skillchain tables created."""
    eng = create_skillchain_engine(f"sqlite:///{tmp_path / 'skillchain.db'}")
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return skillchain_session_factory(engine)


@pytest.fixture()
def settings() -> SkillChainSettings:
    """Settings independent of the environment running the tests."""
    return SkillChainSettings(
        database_url="sqlite:///:memory:",
        default_max_retries=3,
        default_max_total_failures=5,
        session_state_enabled=False,
    )


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Each test sees freshly loaded settings."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any configure_logging call so log setup never leaks between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def registry() -> StaticSkillRegistry:
    return StaticSkillRegistry(
        skills={"skill-plan": "Plan", "skill-build": "Build", "skill-fix": "Fix"},
        agents={"agent-1": "Builder bot"},
    )


# =============================================================================
# Services
# =============================================================================


@pytest.fixture()
def definitions(session_factory, settings) -> ChainDefinitionService:
    return ChainDefinitionService(session_factory, settings=settings)


@pytest.fixture()
def controller(session_factory, settings, registry) -> ExecutionController:
    return ExecutionController(session_factory, settings=settings, registry=registry)


# =============================================================================
# Chain builders
# =============================================================================


def build_chain(
    definitions: ChainDefinitionService,
    *specs: LinkSpec,
    chain_key: str = "feature-flow",
    max_total_failures: int = 5,
    project_id: str = "proj-1",
    publish: bool = True,
) -> Chain:
    """Create a chain with *specs* as links (in order) and publish it."""
    chain = definitions.create_chain(
        chain_key,
        chain_key.replace("-", " ").title(),
        project_id=project_id,
        max_total_failures=max_total_failures,
        created_by="tester",
    )
    for spec in specs:
        definitions.add_link(chain.id, spec, updated_by="tester")
    if publish:
        return definitions.publish_chain(chain.id, published_by="tester")
    return definitions.get_chain(chain.id)


@pytest.fixture()
def two_link_chain(definitions) -> Chain:
    """Published chain: Plan → Build, both NextLink / Retry with max_retries=2."""
    return build_chain(
        definitions,
        LinkSpec(name="Plan", skill_id="skill-plan", max_retries=2),
        LinkSpec(name="Build", skill_id="skill-build", agent_id="agent-1", max_retries=2),
    )


@pytest.fixture()
def single_link_chain(definitions) -> Chain:
    """Published chain with one link, max_retries=1, Retry on failure."""
    return build_chain(
        definitions,
        LinkSpec(name="Only", skill_id="skill-build", max_retries=1),
        chain_key="single",
    )


# =============================================================================
# Operations
# =============================================================================


@pytest.fixture()
def ctx(engine, settings, registry):
    """OperationContext over the test store, acting as user ``tester``."""
    return OperationContext.from_engine(
        engine, settings=settings, registry=registry, caller="test", user="tester"
    )

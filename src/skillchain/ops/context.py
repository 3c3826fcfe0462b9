"""
Request-scoped context for operations.

Every operation function receives an :class:`OperationContext` as its first
argument.  The context carries the session factory of the shared store,
settings, the collaborators the engine talks to, caller identity and a
dry-run flag.  The engine services are built lazily from it.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from skillchain.chains.controller import ExecutionController
from skillchain.chains.definitions import ChainDefinitionService
from skillchain.chains.registry import SkillRegistry, StaticSkillRegistry
from skillchain.chains.session_state import SessionStateSink
from skillchain.core.config import SkillChainSettings, get_settings
from skillchain.core.orm.session import skillchain_session_factory


@dataclass
class OperationContext:
    """Context passed to every operation function.

    Attributes:
        session_factory: Produces sessions bound to the engine's store.
        settings: Engine settings.
        registry: Resolves skill/agent ids to display names.
        session_state: Optional session-state sink.
        request_id: Unique ID for this operation invocation (auto-generated).
        caller: Origin of the request, ``"cli"`` or ``"sdk"``.
        user: Optional identifier of the acting user; recorded as actor.
        dry_run: When ``True``, operations that support it return a preview.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    session_factory: Callable[[], Session]
    settings: SkillChainSettings = field(default_factory=get_settings)
    registry: SkillRegistry = field(default_factory=StaticSkillRegistry)
    session_state: SessionStateSink | None = None
    engine: Engine | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str = "sdk"
    user: str | None = None
    dry_run: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_engine(cls, engine: Engine, **kwargs: Any) -> OperationContext:
        return cls(session_factory=skillchain_session_factory(engine), engine=engine, **kwargs)

    @property
    def actor(self) -> str:
        return self.user or self.caller

    @cached_property
    def controller(self) -> ExecutionController:
        return ExecutionController(
            self.session_factory,
            settings=self.settings,
            session_state=self.session_state,
            registry=self.registry,
        )

    @cached_property
    def definitions(self) -> ChainDefinitionService:
        return ChainDefinitionService(self.session_factory, settings=self.settings)

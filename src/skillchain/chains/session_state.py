"""Session-state side channel.

An optional collaborator that keeps a compact, resumable summary of a run
(phase, current link, context) outside the engine's own store, so an agent
session picking the work back up can see where it left off.

The controller never calls into it from inside a transaction: every
notification is queued with ``UnitOfWork.after_commit`` and delivered
once the state change is durable.  A failing sink is logged and ignored;
the state machine never depends on it.

Usage::

    store = InMemorySessionStateStore()
    controller = ExecutionController(session_factory, session_state=store)
    execution = controller.start_execution(chain_id, started_by="agent-7")
    store.load(f"chain-exec-{execution.id}")

Modules
-------
SessionStateOptions        per-run switches (stored on the execution)
SessionSnapshot            what gets saved
SessionStateSink           protocol a backend implements
InMemorySessionStateStore  single-process backend for tests and the CLI
SessionStateNotifier       delivery with error isolation
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from skillchain.chains.graph import ChainGraph
from skillchain.chains.models import Execution, utcnow
from skillchain.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PHASE = "Implementing"


@dataclass(frozen=True, slots=True)
class SessionStateOptions:
    """Per-run switches for the session-state side channel."""

    auto_save_on_link_complete: bool = True
    auto_load_on_start: bool = True
    auto_clear_on_complete: bool = True
    auto_save_on_pause: bool = True
    auto_save_on_cancel: bool = True
    session_expiry_hours: int = 24
    session_id: str | None = None

    @classmethod
    def disabled(cls) -> SessionStateOptions:
        """Options with every automatic behaviour switched off."""
        return cls(
            auto_save_on_link_complete=False,
            auto_load_on_start=False,
            auto_clear_on_complete=False,
            auto_save_on_pause=False,
            auto_save_on_cancel=False,
        )

    @classmethod
    def from_settings(cls, settings: Any) -> SessionStateOptions:
        return cls(
            auto_save_on_link_complete=settings.session_auto_save_on_link_complete,
            auto_load_on_start=settings.session_auto_load_on_start,
            auto_clear_on_complete=settings.session_auto_clear_on_complete,
            auto_save_on_pause=settings.session_auto_save_on_pause,
            auto_save_on_cancel=settings.session_auto_save_on_cancel,
            session_expiry_hours=settings.session_expiry_hours,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SessionStateOptions | None:
        if data is None:
            return None
        known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def resolve_session_id(self, execution_id: str) -> str:
        return self.session_id or f"chain-exec-{execution_id}"


@dataclass
class SessionSnapshot:
    """Compact phase/summary state for one run."""

    session_id: str
    execution_id: str
    chain_key: str | None
    status: str
    phase: str
    current_link_id: str | None = None
    current_link_name: str | None = None
    ticket_id: str | None = None
    summary: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    total_failure_count: int = 0
    saved_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= utcnow()


@runtime_checkable
class SessionStateSink(Protocol):
    """Backend that stores session snapshots.

    Implementations may raise; the notifier isolates the engine from it.
    """

    def save(self, snapshot: SessionSnapshot) -> None: ...

    def load(self, session_id: str) -> SessionSnapshot | None: ...

    def clear(self, session_id: str) -> None: ...


class InMemorySessionStateStore:
    """Thread-safe dict-backed sink; expired snapshots read as missing."""

    def __init__(self) -> None:
        self._snapshots: dict[str, SessionSnapshot] = {}
        self._lock = threading.Lock()

    def save(self, snapshot: SessionSnapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.session_id] = snapshot

    def load(self, session_id: str) -> SessionSnapshot | None:
        with self._lock:
            snapshot = self._snapshots.get(session_id)
            if snapshot is not None and snapshot.is_expired:
                del self._snapshots[session_id]
                return None
            return snapshot

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._snapshots.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._snapshots)


class SessionEvent(str, Enum):
    """Run boundaries the notifier reacts to."""

    LINK_COMPLETED = "link_completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class SessionStateNotifier:
    """Turns run boundaries into sink calls, honouring per-run options.

    ``sink=None`` makes every method a no-op, which is how the controller
    runs when the side channel is not configured.
    """

    def __init__(
        self,
        sink: SessionStateSink | None,
        default_options: SessionStateOptions | None = None,
    ) -> None:
        self._sink = sink
        self._default_options = default_options or SessionStateOptions()

    @property
    def enabled(self) -> bool:
        return self._sink is not None

    def options_for_new_run(self) -> SessionStateOptions:
        return self._default_options

    def options_for(self, execution: Execution) -> SessionStateOptions:
        return SessionStateOptions.from_dict(execution.session_options) or self._default_options

    def load_for_start(self, options: SessionStateOptions, session_id: str | None) -> dict[str, Any]:
        """Context saved under *session_id*, or ``{}``.

        Only a caller-supplied session id can have prior state; the default
        id is derived from an execution that does not exist yet.
        """
        if self._sink is None or not options.auto_load_on_start or not session_id:
            return {}
        try:
            snapshot = self._sink.load(session_id)
        except Exception as exc:
            logger.warning("session_state_load_failed", session_id=session_id, error=str(exc))
            return {}
        if snapshot is None:
            return {}
        logger.info("session_state_loaded", session_id=session_id, phase=snapshot.phase)
        return dict(snapshot.context)

    def notify(self, event: SessionEvent, execution: Execution, summary: str = "") -> None:
        """Deliver *event* for *execution*; never raises."""
        if self._sink is None:
            return
        options = self.options_for(execution)
        session_id = options.resolve_session_id(execution.id)

        try:
            if event == SessionEvent.COMPLETED:
                if options.auto_clear_on_complete:
                    self._sink.clear(session_id)
                    logger.debug("session_state_cleared", session_id=session_id)
                return

            wanted = {
                SessionEvent.LINK_COMPLETED: options.auto_save_on_link_complete,
                SessionEvent.PAUSED: options.auto_save_on_pause,
                SessionEvent.CANCELLED: options.auto_save_on_cancel,
            }[event]
            if not wanted:
                return
            self._sink.save(self._snapshot(execution, options, session_id, summary))
            logger.debug("session_state_saved", session_id=session_id, trigger=event.value)
        except Exception as exc:
            logger.warning(
                "session_state_sink_failed",
                session_id=session_id,
                execution_id=execution.id,
                trigger=event.value,
                error=str(exc),
            )

    @staticmethod
    def _snapshot(
        execution: Execution,
        options: SessionStateOptions,
        session_id: str,
        summary: str,
    ) -> SessionSnapshot:
        link_name = None
        phase = DEFAULT_PHASE
        if execution.current_link_id and execution.definition:
            graph = ChainGraph.from_snapshot(execution.definition)
            if execution.current_link_id in graph:
                link = graph.get(execution.current_link_id)
                link_name = link.name
                phase = str(link.link_config.get("session_phase") or DEFAULT_PHASE)

        now = utcnow()
        return SessionSnapshot(
            session_id=session_id,
            execution_id=execution.id,
            chain_key=execution.definition.get("chain_key"),
            status=execution.status.value,
            phase=phase,
            current_link_id=execution.current_link_id,
            current_link_name=link_name,
            ticket_id=execution.ticket_id,
            summary=summary,
            context=dict(execution.execution_context),
            total_failure_count=execution.total_failure_count,
            saved_at=now,
            expires_at=now + timedelta(hours=options.session_expiry_hours),
        )


__all__ = [
    "DEFAULT_PHASE",
    "InMemorySessionStateStore",
    "SessionEvent",
    "SessionSnapshot",
    "SessionStateNotifier",
    "SessionStateOptions",
    "SessionStateSink",
]

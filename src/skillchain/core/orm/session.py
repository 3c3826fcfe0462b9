"""SQLAlchemy engine factory, session class, and unit of work.

This module provides:

* ``create_skillchain_engine``  -- Create a SA engine from a URL.
* ``SkillChainSession``         -- Session with ``expire_on_commit=False``.
* ``skillchain_session_factory`` -- ``sessionmaker`` producing the above.
* ``UnitOfWork``                -- One transaction per engine operation;
  translates optimistic-concurrency failures into ``ConflictError``.
* ``init_schema``               -- ``create_all`` for the skillchain tables.

Tags:
    skillchain, orm, sqlalchemy, session, engine, unit-of-work
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from skillchain.core.errors import ConflictError
from skillchain.core.logging import get_logger

logger = get_logger(__name__)


def create_skillchain_engine(
    url: str = "sqlite:///skillchain.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, log all SQL to stdout.
    pool_size, max_overflow, pool_timeout:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        # Foreign keys are off by default in SQLite
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


def engine_from_settings(settings: Any) -> Engine:
    """Build an engine from a :class:`~skillchain.core.config.SkillChainSettings`."""
    return create_skillchain_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_size=None if settings.is_sqlite else settings.database_pool_size,
    )


class SkillChainSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Rows loaded inside a unit of work stay readable after commit, so the
    repositories can convert them to domain dataclasses afterwards.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs["expire_on_commit"] = False
        super().__init__(bind=bind, **kwargs)


def skillchain_session_factory(engine: Engine) -> sessionmaker[SkillChainSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``SkillChainSession`` instances."""
    return sessionmaker(bind=engine, class_=SkillChainSession, expire_on_commit=False)


def init_schema(engine: Engine) -> list[str]:
    """Create every skillchain table that does not exist yet.

    Returns the names of the tables known to the metadata.
    """
    from skillchain.core.orm.base import SkillChainBase
    from skillchain.core.orm import tables  # noqa: F401  (registers mappers)

    SkillChainBase.metadata.create_all(engine)
    names = sorted(SkillChainBase.metadata.tables)
    logger.info("schema_initialized", tables=len(names))
    return names


class UnitOfWork:
    """One transaction: load → validate → mutate → commit.

    Commits on a clean exit and rolls back on any exception.  A stale
    version counter (another writer updated the row first) or a unique
    constraint violation (another writer inserted the same attempt first)
    surfaces as :class:`ConflictError`, the one retryable engine error.

    Callbacks registered with :meth:`after_commit` run only once the
    transaction is durable; they never run after a rollback.

    Example:
        with UnitOfWork(session_factory) as uow:
            row = uow.session.get(ChainExecutionTable, execution_id)
            row.status = "paused"
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory
        self._session: Session | None = None
        self._after_commit: list[Callable[[], None]] = []

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("UnitOfWork is not active")
        return self._session

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Queue *callback* to run after a successful commit."""
        self._after_commit.append(callback)

    def __enter__(self) -> UnitOfWork:
        self._session = self._session_factory()
        self._after_commit = []
        return self

    def __exit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> bool:
        session = self.session
        try:
            if exc is None:
                session.commit()
            else:
                session.rollback()
        except (StaleDataError, IntegrityError) as commit_exc:
            session.rollback()
            session.close()
            self._session = None
            raise _conflict(commit_exc) from commit_exc
        except Exception:
            session.rollback()
            session.close()
            self._session = None
            raise

        session.close()
        self._session = None

        if isinstance(exc, (StaleDataError, IntegrityError)):
            raise _conflict(exc) from exc
        if exc is None:
            for callback in self._after_commit:
                callback()
        return False


def _conflict(exc: BaseException) -> ConflictError:
    logger.warning("write_conflict", error_type=type(exc).__name__, error=str(exc))
    if isinstance(exc, StaleDataError):
        message = "Record was modified concurrently; reload and retry"
    else:
        message = "Concurrent write violated a uniqueness constraint; reload and retry"
    return ConflictError(message, cause=exc if isinstance(exc, Exception) else None)

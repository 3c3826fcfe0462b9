"""Shared helpers for repository classes.

Tags:
    skillchain, repository, helpers
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session


@dataclass(frozen=True, slots=True)
class PageSlice:
    """Pagination params used by list operations."""

    limit: int = 50
    offset: int = 0


def _apply_filters(stmt: Select, conditions: dict[Any, Any]) -> Select:
    """Add ``column == value`` clauses to *stmt*, skipping ``None`` values."""
    for column, value in conditions.items():
        if value is None:
            continue
        stmt = stmt.where(column == value)
    return stmt


def _count(session: Session, stmt: Select) -> int:
    """Total row count of *stmt* before pagination."""
    return session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0


def scope_key_for(organization_id: str | None, project_id: str | None) -> str:
    """Stable uniqueness key for a chain's owning scope."""
    if project_id:
        return f"project:{project_id}"
    return f"org:{organization_id}"

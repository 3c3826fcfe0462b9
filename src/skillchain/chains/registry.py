"""Skill/agent display registry.

The engine stores only skill and agent identifiers; names live with
whoever owns skill definitions.  The registry resolves ids to names for
summaries and the CLI, nothing more.  Unknown ids resolve to ``None``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable


@runtime_checkable
class SkillRegistry(Protocol):
    """Resolves skill and agent identifiers to display names."""

    def skill_name(self, skill_id: str) -> str | None: ...

    def agent_name(self, agent_id: str) -> str | None: ...


class StaticSkillRegistry:
    """Dict-backed registry.

    Example:
        >>> registry = StaticSkillRegistry(skills={"sk-1": "Write tests"})
        >>> registry.skill_name("sk-1")
        'Write tests'
    """

    def __init__(
        self,
        skills: Mapping[str, str] | None = None,
        agents: Mapping[str, str] | None = None,
    ) -> None:
        self._skills = dict(skills or {})
        self._agents = dict(agents or {})

    def register_skill(self, skill_id: str, name: str) -> None:
        self._skills[skill_id] = name

    def register_agent(self, agent_id: str, name: str) -> None:
        self._agents[agent_id] = name

    def skill_name(self, skill_id: str) -> str | None:
        return self._skills.get(skill_id)

    def agent_name(self, agent_id: str) -> str | None:
        return self._agents.get(agent_id)


__all__ = ["SkillRegistry", "StaticSkillRegistry"]

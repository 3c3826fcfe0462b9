"""Skill-chain workflow engine.

Chains are ordered lists of links, each delegating to an external skill.
The engine tracks runs of chains through a durable state machine.

Modules
-------
models         Chain, Link, Execution, LinkExecution, Checkpoint + status enums
graph          ChainGraph: arena of links keyed by id
resolver       resolve_transition: pure next-action decision
validation     guard logic for chain definitions
definitions    ChainDefinitionService: authoring operations
checkpoints    CheckpointRecorder
controller     ExecutionController: run lifecycle
session_state  optional session-state side channel
registry       skill/agent display names
"""

import importlib

from skillchain.chains.models import (
    Chain,
    Checkpoint,
    Execution,
    ExecutionStatus,
    FailureTransition,
    InterventionAction,
    Link,
    LinkExecution,
    LinkOutcome,
    SuccessTransition,
    TransitionAction,
)
from skillchain.chains.graph import ChainGraph
from skillchain.chains.resolver import TransitionDecision, resolve_transition
from skillchain.chains.registry import SkillRegistry, StaticSkillRegistry
from skillchain.chains.session_state import (
    InMemorySessionStateStore,
    SessionSnapshot,
    SessionStateOptions,
    SessionStateSink,
)

_LAZY = {
    "ChainDefinitionService": "skillchain.chains.definitions",
    "LinkSpec": "skillchain.chains.definitions",
    "CheckpointReason": "skillchain.chains.checkpoints",
    "CheckpointRecorder": "skillchain.chains.checkpoints",
    "ExecutionController": "skillchain.chains.controller",
}


def __getattr__(name):
    """Lazy import for the store-backed services.

    They import the repositories, which in turn import the models above,
    so loading them eagerly here would be circular.
    """
    module_name = _LAZY.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(importlib.import_module(module_name), name)


__all__ = [
    "Chain",
    "ChainDefinitionService",
    "ChainGraph",
    "Checkpoint",
    "CheckpointReason",
    "CheckpointRecorder",
    "Execution",
    "ExecutionController",
    "ExecutionStatus",
    "FailureTransition",
    "InMemorySessionStateStore",
    "InterventionAction",
    "Link",
    "LinkExecution",
    "LinkOutcome",
    "LinkSpec",
    "SessionSnapshot",
    "SessionStateOptions",
    "SessionStateSink",
    "SkillRegistry",
    "StaticSkillRegistry",
    "SuccessTransition",
    "TransitionAction",
    "TransitionDecision",
    "resolve_transition",
]

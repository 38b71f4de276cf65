"""
Conversation state

Scenario definitions, the registry that validates them, the Redis-backed
context store and the runner that moves users between steps.
"""

from src.state.registry import ScenarioDefinitionError, ScenarioRegistry
from src.state.runner import ScenarioRunner
from src.state.scenarios import (
    ADMIN_PANEL,
    EVENT_CREATION,
    GROUP_SETUP,
    ONBOARDING,
    build_default_registry,
)
from src.state.store import ContextStore

__all__ = [
    "ADMIN_PANEL",
    "EVENT_CREATION",
    "GROUP_SETUP",
    "ONBOARDING",
    "ContextStore",
    "ScenarioDefinitionError",
    "ScenarioRegistry",
    "ScenarioRunner",
    "build_default_registry",
]

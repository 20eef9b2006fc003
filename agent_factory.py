"""Test data factory for agent scenarios.

Every generated name carries a per-process strictly increasing millisecond
stamp, so agents created by one run never collide with each other. Nothing
here checks the application for existing names.
"""

from __future__ import annotations

import logging
import random
import string
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from config import Settings

LOGGER = logging.getLogger("qa.data")

_stamp_lock = threading.Lock()
_last_stamp = 0


@dataclass(frozen=True)
class AgentData:
    """Agent fields a scenario submits through the UI; `name` is the identity key."""

    name: str
    description: str | None = None
    context: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class KnownAgents:
    """Pre-existing agents some scenarios edit instead of creating their own."""

    edit_target: str

    @classmethod
    def from_settings(cls, settings: Settings) -> KnownAgents:
        return cls(edit_target=settings.edit_target_agent)


VALIDATION_DATA = {
    "EMPTY_NAME": "",
    "LONG_NAME": "A" * 256,
    "SPECIAL_CHARS": "Test@Agent#$%",
    "MAX_DESCRIPTION": "Test description. " * 50,
}


def unique_stamp() -> int:
    """Millisecond timestamp, bumped when needed so successive calls never repeat."""

    global _last_stamp
    with _stamp_lock:
        stamp = max(time.time_ns() // 1_000_000, _last_stamp + 1)
        _last_stamp = stamp
        return stamp


def generate_agent_name(prefix: str = "TestAgent") -> str:
    return f"{prefix}_{unique_stamp()}"


def generate_random_string(length: int = 10) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choices(alphabet, k=length))


def generate_updated_context(prefix: str = "Updated Test Context") -> str:
    return f"{prefix} - {generate_random_string(15)}"


def generate_version_name(prefix: str = "TestVer") -> str:
    return f"{prefix}_{unique_stamp()}_{generate_random_string(6)}"


def create_test_agent(prefix: str = "TestAgent") -> AgentData:
    return AgentData(
        name=generate_agent_name(prefix),
        description="Auto-generated test agent for automation testing",
        context="This is a test agent created by automated tests",
    )


def create_agent_for_creation() -> AgentData:
    return AgentData(
        name=generate_agent_name("CreateTest"),
        description="Agent created to test agent creation functionality",
        context="Test context for agent creation validation",
    )


def create_agent_for_deletion() -> AgentData:
    return AgentData(
        name=generate_agent_name("DeleteTest"),
        description="Agent created for deletion test",
        context="This agent will be deleted as part of test case",
    )


def create_agent_for_editing() -> AgentData:
    return AgentData(
        name=generate_agent_name("EditTest"),
        description="Agent created for editing test",
        context="Original context that will be updated during test",
    )


def create_custom_agent(**overrides: object) -> AgentData:
    """Default test agent with selected fields replaced."""
    return replace(create_test_agent(), **overrides)


def create_minimal_agent(prefix: str = "MinimalTest") -> AgentData:
    return AgentData(name=generate_agent_name(prefix))


def create_maximal_agent() -> AgentData:
    created_at = datetime.now(timezone.utc).isoformat()
    return AgentData(
        name=generate_agent_name("MaximalTest"),
        description=f"Comprehensive test agent created at {created_at}",
        context=(
            "Detailed context with multiple lines.\n"
            "This agent has extensive configuration.\n"
            "Used for comprehensive testing scenarios."
        ),
        tags=("test", "automation", "comprehensive"),
    )


class AgentTracker:
    """Names of agents a scenario created and has not yet deleted."""

    def __init__(self) -> None:
        self._names: list[str] = []

    def track(self, agent_name: str) -> None:
        if agent_name not in self._names:
            self._names.append(agent_name)
            LOGGER.debug("agent_tracked", extra={"agent_name": agent_name})

    def untrack(self, agent_name: str) -> None:
        if agent_name in self._names:
            self._names.remove(agent_name)

    def tracked(self) -> list[str]:
        return list(self._names)

    def clear(self) -> None:
        self._names.clear()

    def count(self) -> int:
        return len(self._names)

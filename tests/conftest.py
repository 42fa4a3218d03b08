"""Shared pytest fixtures for all tests."""

import asyncio
import pytest
import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from src.api.models.agent_team import AgentConfig


def _create_workspace_temp_dir(kind: str) -> Path:
    """Create a temporary directory under repository-local .pytest_work."""
    repo_root = Path(__file__).resolve().parents[1]
    root_dir = repo_root / ".pytest_work" / kind
    root_dir.mkdir(parents=True, exist_ok=True)
    temp_dir = root_dir / f"{kind}_{uuid.uuid4().hex[:8]}"
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


@pytest.fixture
def tmp_path():
    """Workspace-local replacement for pytest's tmp_path fixture."""
    temp_dir = _create_workspace_temp_dir("tmp_path")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def temp_config_dir():
    """Create temporary directory for config files."""
    temp_dir = _create_workspace_temp_dir("config")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


class RecordingObserver:
    """Observer double that keeps every delivered payload."""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []
        self._waiters: List[Any] = []

    async def send(self, payload: Dict[str, Any]) -> None:
        self.messages.append(payload)
        for predicate, future in list(self._waiters):
            if not future.done() and predicate(payload):
                future.set_result(payload)

    async def wait_for(self, predicate, timeout: float = 2.0) -> Dict[str, Any]:
        for payload in self.messages:
            if predicate(payload):
                return payload
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((predicate, future))
        return await asyncio.wait_for(future, timeout)

    def of_type(self, kind: str) -> List[Dict[str, Any]]:
        return [m for m in self.messages if m.get("type") == kind]

    def system(self, sub_kind: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            m for m in self.of_type("turn")
            if m.get("message_kind") == "system" and (sub_kind is None or m.get("sub_kind") == sub_kind)
        ]

    def review_requests(self) -> List[Dict[str, Any]]:
        return [m for m in self.of_type("turn") if m.get("message_kind") == "human-input-request"]


class ScriptedGateway:
    """Completion gateway double: yields scripted fragments per call."""

    def __init__(self, script=None, fail_on_call: Optional[int] = None, fail_after: int = 0):
        self.script = script or (lambda agent, call: [f"{agent.name} ", f"reply {call}"])
        self.fail_on_call = fail_on_call
        self.fail_after = fail_after
        self.calls: List[Dict[str, Any]] = []

    def stream(self, *, session_id, agent, context):
        call_index = len(self.calls)
        self.calls.append({"session_id": session_id, "agent": agent.name, "context": context})
        return self._fragments(agent, call_index)

    async def _fragments(self, agent, call_index):
        fragments = list(self.script(agent, call_index))
        for position, fragment in enumerate(fragments):
            if call_index == self.fail_on_call and position == self.fail_after:
                raise RuntimeError("provider unavailable")
            await asyncio.sleep(0)
            yield fragment
        if call_index == self.fail_on_call and self.fail_after >= len(fragments):
            raise RuntimeError("provider unavailable")


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def sample_agents():
    """Two-agent roster used across orchestration tests."""
    return [
        AgentConfig(
            name="CreativeAgent",
            description="Generates ideas",
            instructions="You propose bold ideas.",
            personality_anchoring="Enthusiastic and brief.",
            avatar_emoji="🎨",
            color_scheme="agent-creative",
        ),
        AgentConfig(
            name="AnalyticalAgent",
            description="Evaluates ideas",
            instructions="You critique ideas carefully.",
            avatar_emoji="⚖️",
            color_scheme="agent-analytical",
        ),
    ]


@pytest.fixture
def teams_config_path(temp_config_dir, sample_agents):
    """Agent teams YAML with a valid default team and a one-agent team."""
    data = {
        "default": "duo",
        "teams": [
            {
                "id": "duo",
                "display_name": "Creative + Analytical",
                "agents": [agent.model_dump() for agent in sample_agents],
            },
            {
                "id": "solo",
                "display_name": "Solo",
                "agents": [sample_agents[0].model_dump()],
            },
            {
                "id": "hidden",
                "display_name": "Hidden",
                "enabled": False,
                "agents": [agent.model_dump() for agent in sample_agents],
            },
        ],
    }
    path = Path(temp_config_dir) / "agent_teams.yaml"
    path.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def make_gateway():
    """Factory for gateways with custom scripts or failures."""
    return ScriptedGateway


@pytest.fixture
def make_observer():
    return RecordingObserver

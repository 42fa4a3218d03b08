"""Bounded per-turn context assembly for collaborating agents."""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from src.api.models.agent_team import AgentConfig

from .errors import ContextBuildError
from .types import TurnRecord

DEFAULT_CONTEXT_WINDOW = 6
DEFAULT_REVIEW_TAIL = 4
DEFAULT_DIRECTIVE = "Provide a helpful response to move the task forward."

PERSONALITY_PRESERVATION_FRAGMENT = """
=== PERSONALITY PRESERVATION ===
CRITICAL: You are in a multi-agent conversation. Maintain your distinct personality throughout.

- You are YOUR unique agent type with YOUR specific role and speaking style
- Do NOT adopt the language patterns, tone, or style of other agents
- Stay true to your individual perspective and approach at all times
- If other agents use different vocabulary or structures, maintain YOUR voice
- Your personality should remain consistent from first response to last
- Think of this as a panel discussion where each expert maintains their expertise

Remember: Diversity of thought requires diversity of voice. Keep your unique identity.
================================
"""


@dataclass(frozen=True)
class TurnContext:
    """Everything one agent sees for one turn."""

    task: str
    speaker: str
    instructions: str
    history: Tuple[TurnRecord, ...]
    directive: str = DEFAULT_DIRECTIVE

    def render(self) -> str:
        lines = [f"Original task: {self.task}", "", "Conversation so far:"]
        if self.history:
            lines.extend(f"{record.speaker}: {record.content}" for record in self.history)
        else:
            lines.append("(no messages yet)")
        lines.extend(["", f"You are {self.speaker}. {self.directive}"])
        return "\n".join(lines)

    def to_messages(self) -> List[Dict[str, str]]:
        return [{"role": "user", "content": self.render()}]


def build_role_instructions(agent: AgentConfig) -> str:
    """Combine an agent's instructions with personality reinforcement."""
    role_line = agent.name
    if agent.description:
        role_line = f"{agent.name} - {agent.description}"
    parts = [
        (agent.instructions or "").strip(),
        PERSONALITY_PRESERVATION_FRAGMENT.strip(),
        f"YOUR SPECIFIC ROLE: You are {role_line}",
    ]
    if agent.personality_anchoring:
        parts.append(f"YOUR SPEAKING STYLE: {agent.personality_anchoring}")
    return "\n\n".join(part for part in parts if part)


def build_turn_context(
    transcript: Sequence[TurnRecord],
    instructions: str,
    task: str,
    *,
    speaker: str,
    window: int = DEFAULT_CONTEXT_WINDOW,
) -> TurnContext:
    """Build the bounded context for the next speaker.

    Pure function of its inputs: the transcript is only read, and only its
    last ``window`` entries are carried forward.
    """
    if not (instructions or "").strip():
        raise ContextBuildError("Role instructions must not be empty")
    if not (speaker or "").strip():
        raise ContextBuildError("Speaker must not be empty")
    if window < 0:
        raise ContextBuildError("Context window must not be negative")

    history = tuple(transcript[-window:]) if window else ()
    return TurnContext(
        task=task,
        speaker=speaker,
        instructions=instructions,
        history=history,
    )


def build_review_prompt(
    transcript: Sequence[TurnRecord],
    task: str,
    *,
    tail: int = DEFAULT_REVIEW_TAIL,
) -> str:
    """Summary prompt shown to the human reviewer after a round."""
    recent = transcript[-tail:] if tail else []
    summary = "\n".join(f"{record.speaker}: {record.content}" for record in recent)
    return (
        "Agent discussion complete!\n\n"
        f"Task: {task}\n\n"
        f"Conversation Summary:\n{summary or '(no agent output)'}\n\n"
        "Please review and decide next steps: Approve, Revise (with feedback), Continue, or Cancel."
    )

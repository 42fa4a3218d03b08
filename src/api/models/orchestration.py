"""
Orchestration transport data models

Inbound WebSocket commands and REST response shapes for the
human-in-the-loop workflow endpoints
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Optional


class InboundCommand(BaseModel):
    """One JSON command received from an observer over the WebSocket"""
    model_config = ConfigDict(extra="ignore")

    type: Literal["start_workflow", "submit_decision", "reset", "get_state", "get_teams"]
    task: Optional[str] = Field(None, description="Task text for start_workflow")
    team: Optional[str] = Field(None, description="Team ID for start_workflow (empty = default team)")
    request_id: Optional[str] = Field(None, description="Pending request being answered")
    decision: Optional[str] = Field(None, description="Approve, Revise, Continue or Cancel")
    feedback: Optional[str] = Field(None, description="Reviewer feedback, used with Revise")


class TeamSummary(BaseModel):
    """Selectable team as listed by the REST API"""
    id: str
    display_name: str
    agents: List[str] = Field(default_factory=list)


class TeamsResponse(BaseModel):
    default: Optional[str] = None
    teams: List[TeamSummary]


class SessionStateResponse(BaseModel):
    """Read-only view of one live session"""
    session_id: str
    stage: str
    active_role: str
    iteration: int
    awaiting_human: bool
    task: str
    team_id: str = ""
    participant_names: List[str] = Field(default_factory=list)
    turn_count: int = 0
    created_at: Optional[str] = None
    last_activity: Optional[str] = None
    transcript: List[Dict[str, object]] = Field(default_factory=list)

"""
Agent team configuration data models

Defines Pydantic models for the two-agent teams a workflow can be started
with, including persona instructions and UI styling hints
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class AgentConfig(BaseModel):
    """One collaborating agent"""
    name: str = Field(..., min_length=1, description="Agent display name, unique within a team")
    description: str = Field("", description="Brief description of the agent's role")
    instructions: str = Field("", description="Detailed instructions defining behavior and personality")
    personality_anchoring: str = Field("", description="Speaking style to keep consistent across turns")
    avatar_emoji: str = Field("", description="Emoji used as the agent's avatar")
    color_scheme: str = Field("", description="CSS class name for the agent's color scheme")
    model_id: Optional[str] = Field(None, description="Model override (None = use default model)")
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0, description="Temperature override")

    def presentation(self) -> Dict[str, Any]:
        """Fields the observer needs to style this agent's messages"""
        return {
            "name": self.name,
            "description": self.description,
            "avatar_emoji": self.avatar_emoji,
            "color_scheme": self.color_scheme,
        }


class AgentTeam(BaseModel):
    """A named roster of agents"""
    id: str = Field(..., min_length=1, description="Team unique identifier")
    display_name: str = Field(..., description="Team display name")
    agents: List[AgentConfig] = Field(default_factory=list)
    enabled: bool = Field(default=True, description="Whether team is selectable")


class AgentTeamsConfig(BaseModel):
    """Complete agent teams configuration"""
    default: str = Field(..., description="Default team ID")
    teams: List[AgentTeam]

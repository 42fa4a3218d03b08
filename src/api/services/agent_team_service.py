"""
Agent team configuration service

Handles loading the two-agent teams a workflow can be started with
"""
import logging
import yaml
import aiofiles
from pathlib import Path
from typing import Dict, List, Optional

from ..models.agent_team import AgentTeam, AgentTeamsConfig
from ..paths import (
    config_defaults_dir,
    config_local_dir,
    ensure_local_file,
    resolve_layered_read_path,
)

logger = logging.getLogger(__name__)


class AgentTeamService:
    """Agent team configuration service"""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize agent team configuration service

        Args:
            config_path: Configuration file path, defaults to config/local/agent_teams.yaml
                seeded from config/defaults/agent_teams.yaml
        """
        self.defaults_path: Optional[Path] = None

        if config_path is None:
            self.defaults_path = config_defaults_dir() / "agent_teams.yaml"
            self.config_path = config_local_dir() / "agent_teams.yaml"
        else:
            self.config_path = Path(config_path)
        self._ensure_config_exists()

    def _ensure_config_exists(self):
        """Ensure configuration file exists, create default if not"""
        initial_text = yaml.safe_dump(self._get_default_config(), allow_unicode=True, sort_keys=False)
        if self.defaults_path is not None:
            ensure_local_file(
                local_path=self.config_path,
                defaults_path=self.defaults_path,
                initial_text=initial_text,
            )
            return

        if not self.config_path.exists():
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(initial_text, encoding="utf-8")

    def _get_default_config(self) -> dict:
        """Minimal fallback used when no defaults file ships with the install"""
        return {
            "default": "test",
            "teams": [
                {
                    "id": "test",
                    "display_name": "Creative + Analytical",
                    "enabled": True,
                    "agents": [
                        {
                            "name": "CreativeAgent",
                            "description": "A creative thinker who generates ideas",
                            "instructions": "You are a creative and enthusiastic agent who loves generating ideas and proposals. Be brief and focused - provide one clear idea per response.",
                            "personality_anchoring": "Maintain creative enthusiasm. Focus on possibilities and innovation.",
                            "avatar_emoji": "🎨",
                            "color_scheme": "agent-creative",
                        },
                        {
                            "name": "AnalyticalAgent",
                            "description": "A logical analyzer who evaluates ideas",
                            "instructions": "You are an analytical and methodical agent who evaluates ideas critically. Keep your analysis brief and actionable.",
                            "personality_anchoring": "Stay logical and methodical. Focus on analysis and evidence.",
                            "avatar_emoji": "⚖️",
                            "color_scheme": "agent-analytical",
                        },
                    ],
                }
            ],
        }

    async def load_config(self) -> AgentTeamsConfig:
        """Load configuration file"""
        config_path = (
            resolve_layered_read_path(
                local_path=self.config_path,
                defaults_path=self.defaults_path,
            )
            if self.defaults_path is not None
            else self.config_path
        )

        async with aiofiles.open(config_path, 'r', encoding='utf-8') as f:
            content = await f.read()
            data = yaml.safe_load(content)
            return AgentTeamsConfig(**data)

    async def get_teams(self) -> List[AgentTeam]:
        """Get all enabled teams"""
        config = await self.load_config()
        return [team for team in config.teams if team.enabled]

    async def get_team(self, team_id: Optional[str] = None) -> Optional[AgentTeam]:
        """
        Get specified team

        Args:
            team_id: Team ID; empty selects the configured default team

        Returns:
            AgentTeam or None if not found or disabled
        """
        config = await self.load_config()
        wanted = (team_id or "").strip().lower() or config.default
        for team in config.teams:
            if team.id.lower() == wanted and team.enabled:
                return team
        logger.info("Agent team %r not found", team_id)
        return None

    async def list_teams(self) -> Dict[str, str]:
        """Map of selectable team IDs to display names"""
        return {team.id: team.display_name for team in await self.get_teams()}

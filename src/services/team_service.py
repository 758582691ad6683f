import logging
from typing import Dict, Iterable, List, Optional

from services.models import Team

logger = logging.getLogger(__name__)


def load_teams(roster: Dict[str, List[str]]) -> List[Team]:
    """Build Team records from the configured team name -> aliases mapping"""
    teams = [Team(name=name, members=tuple(aliases)) for name, aliases in roster.items()]
    logger.debug(f"Loaded {len(teams)} teams: {[team.name for team in teams]}")
    return teams


class TeamResolver:
    """Resolves a person alias to the name of the team that lists it"""

    def __init__(self, teams: Iterable[Team]):
        self.teams = list(teams)

    def resolve(self, alias: str) -> Optional[str]:
        # Linear scan, first team wins; rosters are tens of teams
        for team in self.teams:
            if alias in team.members:
                return team.name
        return None

    def label_for(self, alias: str) -> str:
        """Team name for the alias, or the alias itself when no team claims it"""
        team_name = self.resolve(alias)
        return team_name if team_name is not None else alias

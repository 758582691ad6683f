import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

MAX_WORK_ITEMS_LIMIT = 200

LEAF_WORK_ITEM_TYPES = ("Task", "Bug")


class FieldNames:
    TITLE = "System.Title"
    WORK_ITEM_TYPE = "System.WorkItemType"
    ASSIGNED_TO = "System.AssignedTo"
    REMAINING = "Microsoft.VSTS.Scheduling.RemainingWork"
    REPORTING_INFO = "Custom.ReportingInfo"


class Relations:
    CHILDREN = "System.LinkTypes.Hierarchy-Forward"


class ConfigurationError(Exception):
    """Raised when required process configuration is missing or invalid"""
    pass


@dataclass
class Settings:
    organization_url: str
    personal_access_token: str
    teams: Dict[str, List[str]] = field(default_factory=dict)
    max_work_items_limit: int = MAX_WORK_ITEMS_LIMIT
    max_parallel_requests: int = 8
    request_timeout: float = 30.0
    log_level: str = "INFO"
    log_dir: Optional[str] = None


def _load_teams(environ: Mapping[str, str]) -> Dict[str, List[str]]:
    """
    Read the team roster from ADO_TEAMS (inline JSON) or ADO_TEAMS_FILE (path to JSON)

    The roster is a mapping of team name to a list of member aliases.
    """
    raw = environ.get("ADO_TEAMS")
    source = "ADO_TEAMS"

    if not raw and environ.get("ADO_TEAMS_FILE"):
        source = environ["ADO_TEAMS_FILE"]
        try:
            with open(source, "r", encoding="utf-8") as roster_file:
                raw = roster_file.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read teams file '{source}': {e}") from e

    if not raw:
        raise ConfigurationError("Teams are not configured. Set ADO_TEAMS or ADO_TEAMS_FILE.")

    try:
        teams = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Teams configuration in {source} is not valid JSON: {e}") from e

    if not isinstance(teams, dict):
        raise ConfigurationError("Teams configuration must be an object of team name to alias list.")

    for team_name, aliases in teams.items():
        if not isinstance(aliases, list) or not all(isinstance(alias, str) for alias in aliases):
            raise ConfigurationError(f"Members of team '{team_name}' must be a list of alias strings.")

    return teams


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'.") from e
    if parsed < 1:
        raise ConfigurationError(f"{name} must be positive, got {parsed}.")
    return parsed


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables

    Args:
        environ: Mapping to read from, defaults to os.environ

    Returns:
        Settings for the process lifetime

    Raises:
        ConfigurationError: when the organization URL, token or teams are missing
    """
    if environ is None:
        environ = os.environ

    organization_url = environ.get("ADO_ORGANIZATION_URL")
    if not organization_url:
        raise ConfigurationError("OrganizationUrl is not configured. Set ADO_ORGANIZATION_URL.")

    token = environ.get("ADO_PERSONAL_ACCESS_TOKEN")
    if not token:
        raise ConfigurationError("PersonalAccessToken is not configured. Set ADO_PERSONAL_ACCESS_TOKEN.")

    teams = _load_teams(environ)

    max_work_items_limit = _int_setting(environ, "ADO_MAX_WORK_ITEMS_LIMIT", MAX_WORK_ITEMS_LIMIT)
    if max_work_items_limit > MAX_WORK_ITEMS_LIMIT:
        raise ConfigurationError(
            f"ADO_MAX_WORK_ITEMS_LIMIT cannot exceed the Azure DevOps limit of {MAX_WORK_ITEMS_LIMIT}."
        )

    timeout_value = environ.get("ADO_REQUEST_TIMEOUT") or "30"
    try:
        request_timeout = float(timeout_value)
    except ValueError as e:
        raise ConfigurationError(f"ADO_REQUEST_TIMEOUT must be a number, got '{timeout_value}'.") from e

    settings = Settings(
        organization_url=organization_url.rstrip("/"),
        personal_access_token=token,
        teams=teams,
        max_work_items_limit=max_work_items_limit,
        max_parallel_requests=_int_setting(environ, "ADO_MAX_PARALLEL_REQUESTS", 8),
        request_timeout=request_timeout,
        log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        log_dir=environ.get("LOG_DIR") or None,
    )
    logger.info(f"Loaded settings for {settings.organization_url} with {len(teams)} teams")
    return settings

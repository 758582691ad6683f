import logging
from typing import Dict, Iterable, List

from services.models import RemainingByTeamLine, TaskDetails, WorkItem
from services.team_service import TeamResolver

logger = logging.getLogger(__name__)


def calculate_remaining_by_team(resolver: TeamResolver, work_items: Iterable[WorkItem],
                                include_tasks: bool = False) -> List[RemainingByTeamLine]:
    """
    Sum remaining work of leaf work items per team

    Args:
        resolver: Maps assignee aliases to team names
        work_items: Leaf work items, typically from HierarchyTraverser
        include_tasks: Attach per-item details to every line

    Returns:
        Lines ordered by remaining work descending, then team name
    """
    grouped: Dict[str, List[TaskDetails]] = {}

    for work_item in work_items:
        team = resolver.label_for(work_item.alias)
        remaining = work_item.remaining_work if work_item.remaining_work is not None else 0.0
        grouped.setdefault(team, []).append(TaskDetails(work_item.id, work_item.title or "", remaining))

    lines = []
    for team, tasks in grouped.items():
        lines.append(RemainingByTeamLine(
            team=team,
            remaining=sum(task.remaining for task in tasks),
            tasks=sorted(tasks, key=lambda task: task.remaining, reverse=True) if include_tasks else None
        ))

    lines.sort(key=lambda line: (-line.remaining, line.team))
    logger.debug(f"Remaining work grouped into {len(lines)} teams")
    return lines
